"""
Typed payloads exchanged with the workflow engine.

Each workflow kind has one model for the parameters a user triggers it with
and one model for the callback the engine posts back. Callback models forbid
unknown fields so a renamed field in the engine shows up as a 400 instead of
being dropped.
"""

from datetime import date
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel

from brandflow.exceptions import PayloadValidationError
from brandflow.models import WorkflowKind


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error["loc"]) or "body"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


# Trigger parameters


class TriggerParams(BaseModel):
    """Accepts both the camelCase names the web app sends and snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class BrandVoiceAnalysisParams(TriggerParams):
    company_name: str = Field(min_length=1)
    website_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("websiteUrl", "website_url", "website"),
    )
    linkedin_company: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "linkedinCompanyUrl", "linkedinCompany", "linkedin_company"
        ),
    )
    linkedin_personal: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "linkedinPersonalUrl", "linkedinPersonal", "linkedin_personal"
        ),
    )
    industry: Optional[str] = None
    description: Optional[str] = None
    social_urls: dict[str, str] = Field(default_factory=dict)


class MascotGenerationParams(TriggerParams):
    description: str = Field(min_length=1)
    reference_image: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("imageUrl", "referenceImage", "reference_image"),
    )
    style: str = "modern"
    colors: list[str] = Field(default_factory=list)
    personality: str = "friendly"


class PostsCollectionParams(TriggerParams):
    platforms: list[str] = Field(min_length=1)
    date_range_start: Optional[date] = Field(
        default=None,
        validation_alias=AliasChoices(
            "startDate", "dateRangeStart", "date_range_start"
        ),
    )
    date_range_end: Optional[date] = Field(
        default=None,
        validation_alias=AliasChoices("endDate", "dateRangeEnd", "date_range_end"),
    )
    company_linkedin_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "linkedinCompanyUrl", "companyLinkedinUrl", "company_linkedin_url"
        ),
    )

    @model_validator(mode="after")
    def check_date_range(self):
        if (
            self.date_range_start
            and self.date_range_end
            and self.date_range_start > self.date_range_end
        ):
            raise ValueError("date_range_start must not be after date_range_end")
        return self


class PostGenerationParams(TriggerParams):
    topic: str = Field(min_length=1)
    platform: str = "linkedin"
    tone: Optional[str] = None
    length: Literal["short", "medium", "long"] = "medium"
    keywords: list[str] = Field(default_factory=list)
    include_hashtags: bool = True
    include_emojis: bool = False
    custom_instructions: Optional[str] = None


TRIGGER_PARAMS: dict[WorkflowKind, type[TriggerParams]] = {
    WorkflowKind.BRAND_VOICE_ANALYSIS: BrandVoiceAnalysisParams,
    WorkflowKind.MASCOT_GENERATION: MascotGenerationParams,
    WorkflowKind.POSTS_COLLECTION: PostsCollectionParams,
    WorkflowKind.POST_GENERATION: PostGenerationParams,
}


def validate_trigger_params(kind: WorkflowKind, raw: Any) -> TriggerParams:
    if not isinstance(raw, dict):
        raise PayloadValidationError("Request body must be a JSON object")
    try:
        return TRIGGER_PARAMS[kind].model_validate(raw)
    except ValidationError as e:
        raise PayloadValidationError(format_validation_error(e))


# Callbacks


class CallbackPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: UUID
    attempt: Optional[int] = None
    status: Literal["completed", "error"] = "completed"
    error_message: Optional[str] = None

    # Echoed back from the outbound payload by most engine workflows
    user_id: Optional[UUID] = None
    company_profile_id: Optional[UUID] = None
    workflow_type: Optional[str] = None
    timestamp: Optional[str] = None


class BrandVoiceAnalysisCallback(CallbackPayload):
    business_overview: Optional[str] = None
    ideal_customer_profile: Optional[str] = None
    value_proposition: Optional[str] = None
    analysis_result: Optional[dict[str, Any]] = None

    def failure_message(self) -> str:
        if self.error_message:
            return self.error_message
        if self.analysis_result and self.analysis_result.get("error"):
            return str(self.analysis_result["error"])
        return "Brand voice analysis failed"


class MascotGenerationCallback(CallbackPayload):
    mascot_data: Optional[dict[str, Any]] = None
    mascot_personality: Optional[str] = None
    mascot_image_url: Optional[str] = None
    image_base64: Optional[str] = None
    image_content_type: str = "image/png"

    def failure_message(self) -> str:
        return self.error_message or "Mascot generation failed"


class PostsCollectionCallback(CallbackPayload):
    posts_data: list[dict[str, Any]] = Field(default_factory=list)
    platforms: Optional[list[str]] = None
    date_range_start: Optional[str] = None
    date_range_end: Optional[str] = None

    def failure_message(self) -> str:
        return self.error_message or "Posts collection failed"


class PostGenerationCallback(CallbackPayload):
    title: Optional[str] = None
    content: Optional[str] = None
    platform: Optional[str] = None
    image_url: Optional[str] = None
    image_prompt: Optional[str] = None
    hashtags: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def content_required_on_success(self):
        if self.status == "completed" and not self.content:
            raise ValueError("content is required for a completed post generation")
        return self

    def failure_message(self) -> str:
        return self.error_message or "Post generation failed"


CALLBACK_PAYLOADS: dict[WorkflowKind, type[CallbackPayload]] = {
    WorkflowKind.BRAND_VOICE_ANALYSIS: BrandVoiceAnalysisCallback,
    WorkflowKind.MASCOT_GENERATION: MascotGenerationCallback,
    WorkflowKind.POSTS_COLLECTION: PostsCollectionCallback,
    WorkflowKind.POST_GENERATION: PostGenerationCallback,
}


def apply_field_mappings(
    payload: dict[str, Any], field_mappings: Optional[dict[str, str]]
) -> dict[str, Any]:
    """
    Rename incoming keys to internal field names.

    Keys without a mapping keep their name. Two keys landing on the same
    internal name is rejected rather than silently picking one.
    """
    if not field_mappings:
        return dict(payload)

    mapped: dict[str, Any] = {}
    for key, value in payload.items():
        target = field_mappings.get(key, key)
        if target in mapped:
            raise PayloadValidationError(
                f"Field '{key}' maps onto '{target}' which is already present"
            )
        mapped[target] = value
    return mapped


def validate_callback(kind: WorkflowKind, payload: dict[str, Any]) -> CallbackPayload:
    try:
        return CALLBACK_PAYLOADS[kind].model_validate(payload)
    except ValidationError as e:
        raise PayloadValidationError(format_validation_error(e))
