from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.orm.exc import DetachedInstanceError
from sqlalchemy.sql import func

from brandflow.utils.uuid_utils import generate_ulid_uuid

# JSONB on PostgreSQL, plain JSON elsewhere (the test suite runs on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    def __repr__(self) -> str:
        return self._repr(id=self.id)

    def _repr(self, **fields: dict[str, Any]) -> str:
        """
        Helper for __repr__
        """
        field_strings = []
        at_least_one_attached_attribute = False
        for key, field in fields.items():
            try:
                # Convert UUID fields to strings automatically
                if isinstance(field, UUID):
                    field = str(field)
                field_strings.append(f"{key}={field!r}")
            except DetachedInstanceError:
                field_strings.append(f"{key}=DetachedInstanceError")
            else:
                at_least_one_attached_attribute = True
        if at_least_one_attached_attribute:
            return f"<{self.__class__.__name__}({','.join(field_strings)})>"
        return f"<{self.__class__.__name__} {id(self)}>"


class WorkflowKind(str, Enum):
    BRAND_VOICE_ANALYSIS = "brand_voice_analysis"
    MASCOT_GENERATION = "mascot_generation"
    POSTS_COLLECTION = "posts_collection"
    POST_GENERATION = "post_generation"
    # Registry-only keys: they never own a session
    POSTS_COLLECTION_COMPLETED = "posts_collection_completed"
    POST_REVISION = "post_revision"


SESSION_KINDS = frozenset(
    {
        WorkflowKind.BRAND_VOICE_ANALYSIS,
        WorkflowKind.MASCOT_GENERATION,
        WorkflowKind.POSTS_COLLECTION,
        WorkflowKind.POST_GENERATION,
    }
)


class WorkflowStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.ERROR)


class WorkflowLogEvent(str, Enum):
    TRIGGERED = "triggered"  # Outbound call accepted by the workflow engine
    DELIVERY_FAILED = "delivery_failed"  # Outbound call failed, session errored
    COMPLETED = "completed"  # Callback committed a result
    ERROR = "error"  # Callback reported a failure
    EXPIRED = "expired"  # Reaper gave up waiting for a callback


class User(Base):
    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    external_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    """Subject of the auth provider's access token"""
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_admin: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    company_profile: Mapped[Optional["CompanyProfile"]] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self):
        return self._repr(id=self.id, email=self.email, external_id=self.external_id)


class CompanyProfile(Base):
    __tablename__ = "company_profiles"

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), unique=True
    )
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    website_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    social_urls: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    """
    {
        "linkedin_company": "...",
        "linkedin_personal": "...",
        "<platform>": "..."
    }
    """
    industry: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    voice_tone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand_guidelines: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Written by the brand voice analysis callback
    business_overview: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    value_proposition: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ideal_customer_profile: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand_voice_analysis: Mapped[Optional[dict]] = mapped_column(
        JSONType, nullable=True
    )

    # Written by the mascot generation callback
    mascot_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    mascot_image_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mascot_personality: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="company_profile")

    def __repr__(self):
        return self._repr(id=self.id, company_name=self.company_name)


class WebhookConfiguration(Base):
    """
    Immutable snapshot of the registry entry for one workflow kind.

    Editing an entry appends a new version and moves `is_current`; sessions
    keep pointing at the version they were created with.
    """

    __tablename__ = "webhook_configurations"

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    workflow_kind: Mapped[WorkflowKind] = mapped_column(
        SQLEnum(WorkflowKind), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_current: Mapped[bool] = mapped_column(default=True)
    inbound_endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    outbound_webhook_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True)
    field_mappings: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    """
    incoming field name -> internal field name, e.g.
    {
        "companyProfileId": "company_profile_id",
        "analysis": "analysis_result"
    }
    """
    expected_payload: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    documentation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "workflow_kind", "version", name="uq_webhook_configuration_version"
        ),
        Index("idx_webhook_configurations_kind_current", "workflow_kind", "is_current"),
    )

    def __repr__(self):
        return self._repr(
            id=self.id, workflow_kind=self.workflow_kind, version=self.version
        )


class WorkflowSession(Base):
    __tablename__ = "workflow_sessions"

    id: Mapped[UUID] = mapped_column(
        Uuid(), primary_key=True, default=generate_ulid_uuid
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    workflow_kind: Mapped[WorkflowKind] = mapped_column(
        SQLEnum(WorkflowKind), nullable=False
    )
    parent_entity_id: Mapped[Optional[UUID]] = mapped_column(Uuid(), nullable=True)
    scope_key: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    """
    String form of parent_entity_id ("" when there is none). Part of the
    uniqueness key because NULLs never collide in a unique constraint.
    """
    status: Mapped[WorkflowStatus] = mapped_column(
        SQLEnum(WorkflowStatus), nullable=False, default=WorkflowStatus.IDLE
    )
    params: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    result: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    webhook_configuration_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(),
        ForeignKey("webhook_configurations.id", ondelete="SET NULL"),
        nullable=True,
    )
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    webhook_configuration: Mapped[Optional["WebhookConfiguration"]] = relationship()
    logs: Mapped[list["WorkflowLog"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="WorkflowLog.created_at",
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "workflow_kind", "scope_key", name="uq_workflow_session_scope"
        ),
        Index("idx_workflow_sessions_status_updated", "status", "updated_at"),
    )

    def __repr__(self):
        return self._repr(
            id=self.id, workflow_kind=self.workflow_kind, status=self.status
        )


class WorkflowLog(Base):
    __tablename__ = "workflow_logs"

    id: Mapped[UUID] = mapped_column(
        Uuid(), primary_key=True, default=generate_ulid_uuid
    )
    session_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("workflow_sessions.id", ondelete="CASCADE")
    )
    user_id: Mapped[UUID] = mapped_column(Uuid(), nullable=False)
    workflow_kind: Mapped[WorkflowKind] = mapped_column(
        SQLEnum(WorkflowKind), nullable=False
    )
    event: Mapped[WorkflowLogEvent] = mapped_column(
        SQLEnum(WorkflowLogEvent), nullable=False
    )
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    payload: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    session: Mapped["WorkflowSession"] = relationship(back_populates="logs")

    __table_args__ = (Index("idx_workflow_logs_session", "session_id"),)


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    session_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(),
        ForeignKey("workflow_sessions.id", ondelete="SET NULL"),
        unique=True,
        nullable=True,
    )
    """A generation session produces at most one post"""
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    platform: Mapped[str] = mapped_column(String(64), nullable=False, default="linkedin")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft")
    ai_generated: Mapped[bool] = mapped_column(default=False)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hashtags: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    generation_params: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    engagement_stats: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    scheduled_for: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_posts_user_created", "user_id", "created_at"),)


class SocialPostsCollection(Base):
    __tablename__ = "social_posts_collections"

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    session_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("workflow_sessions.id", ondelete="CASCADE"), unique=True
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    platforms: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    date_range_start: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    date_range_end: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    posts_data: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    key_name: Mapped[str] = mapped_column(Text, nullable=False)
    prefix: Mapped[str] = mapped_column(Text, nullable=False)
    """
    the prefix is used to show the admin a small part of the api key to identify it
    it is not used for authentication. It shows the general prefix and then 3 characters of the actual key

    - bf_wh_xxx
    """
    hashed_key: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    workflow_kind: Mapped[WorkflowKind] = mapped_column(
        SQLEnum(WorkflowKind), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(default=True)
    can_read: Mapped[bool] = mapped_column(default=True)
    can_write: Mapped[bool] = mapped_column(default=True)
    can_admin: Mapped[bool] = mapped_column(default=False)
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_by_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return self._repr(
            id=self.id, key_name=self.key_name, workflow_kind=self.workflow_kind
        )


class SubscriptionHistory(Base):
    __tablename__ = "subscription_history"

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    from_plan: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    to_plan: Mapped[str] = mapped_column(String(32), nullable=False)
    change_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Amount in cents"""
    post_expansions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stripe_checkout_session_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (Index("idx_subscription_history_user", "user_id"),)
