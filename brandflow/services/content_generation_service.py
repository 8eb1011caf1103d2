"""
Direct content generation through OpenAI.

Unlike the workflow kinds these calls are synchronous from the client's
point of view: the answer comes back in the same request and nothing is
persisted unless the caller saves the result.
"""

import json
import re
from typing import Any, Optional

import structlog
from litellm import acompletion
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from brandflow.exceptions import ConfigurationError
from brandflow.models import CompanyProfile
from brandflow.settings import settings

logger = structlog.stdlib.get_logger(__name__)

POST_SYSTEM_PROMPT = (
    "You are an expert social media content creator. Generate engaging, "
    "platform-specific content that converts. Always respond with a JSON object "
    'containing "content", "hashtags" (array), and "imagePrompt" (string).'
)

BRAND_SYSTEM_PROMPT = (
    "You are a brand analysis expert. Analyze the company information and "
    "sample posts to extract brand voice and content strategy insights."
)

LENGTH_GUIDE = {
    "short": "1-2 sentences (max 50 words)",
    "medium": "a paragraph (max 150 words)",
    "long": "detailed content (max 300 words)",
}

PLATFORM_SPECS = {
    "linkedin": "Professional, industry-focused, thought leadership",
    "facebook": "Community-focused, conversational, engaging",
    "twitter": "Concise, trending, hashtag-heavy",
    "instagram": "Visual-first, lifestyle, inspirational",
    "tiktok": "Trendy, entertainment-focused, Gen Z language",
    "youtube": "Educational, tutorial-style, call-to-action focused",
}

PLATFORM_HASHTAGS = {
    "linkedin": ["#LinkedIn", "#Professional", "#Business"],
    "facebook": ["#Facebook", "#Community"],
    "twitter": ["#Twitter", "#Trending"],
    "instagram": ["#Instagram", "#Content"],
    "tiktok": ["#TikTok", "#Viral"],
    "youtube": ["#YouTube", "#Video"],
}

MAX_FALLBACK_HASHTAGS = 5

DEFAULT_BRAND_ANALYSIS = {
    "voiceTone": "Professional and informative",
    "contentTopics": ["Industry insights", "Company updates", "Thought leadership"],
    "postingStyle": "Regular, professional updates",
    "targetAudience": "Industry professionals",
    "industryInsights": "Standard industry practices",
    "recommendations": [
        "Share industry insights",
        "Post company updates",
        "Engage with community",
    ],
}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PostGenerationRequest(CamelModel):
    platforms: list[str] = Field(min_length=1)
    topic: str = Field(min_length=1)
    keywords: list[str] = Field(default_factory=list)
    tone: str = "professional"
    length: str = "medium"
    include_hashtags: bool = True
    include_emojis: bool = False
    custom_instructions: Optional[str] = None


class GeneratedPost(CamelModel):
    platform: str
    content: str
    hashtags: list[str] = Field(default_factory=list)
    image_prompt: str


class BrandAnalysisRequest(CamelModel):
    company_name: str = Field(min_length=1)
    linkedin_company_url: Optional[str] = None
    linkedin_personal_url: Optional[str] = None
    sample_posts: list[str] = Field(default_factory=list)


def _require_api_key() -> str:
    if not settings.OPENAI_API_KEY:
        raise ConfigurationError("OpenAI API key not configured")
    return settings.OPENAI_API_KEY


def _extract_json(content: str) -> Optional[dict[str, Any]]:
    """Parse a model answer as a JSON object, tolerating ```json fences."""
    text = content.strip()
    fenced = re.match(r"^```(?:json)?\s*(.*?)\s*```$", text, re.DOTALL)
    if fenced:
        text = fenced.group(1)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def build_post_prompt(
    request: PostGenerationRequest,
    platform: str,
    company_profile: Optional[CompanyProfile] = None,
) -> str:
    lines = [
        f'Create a {request.tone} {platform} post about "{request.topic}" that is '
        f"{LENGTH_GUIDE.get(request.length, LENGTH_GUIDE['medium'])}.",
        f"Platform guidelines: {PLATFORM_SPECS.get(platform, 'Engaging and on-brand')}",
    ]
    if request.keywords:
        lines.append(f"Keywords to include: {', '.join(request.keywords)}")
    lines.append(
        "Include relevant hashtags."
        if request.include_hashtags
        else "Do not include hashtags."
    )
    lines.append(
        "Use appropriate emojis." if request.include_emojis else "Do not use emojis."
    )
    if request.custom_instructions:
        lines.append(f"Additional instructions: {request.custom_instructions}")
    if company_profile is not None:
        lines.extend(
            [
                "Company context:",
                f"- Company: {company_profile.company_name}",
                f"- Industry: {company_profile.industry or 'Not specified'}",
                f"- Voice/Tone: {company_profile.voice_tone or 'Professional'}",
                "- Brand Guidelines: "
                + (
                    company_profile.brand_guidelines
                    or "Standard professional guidelines"
                ),
            ]
        )
    lines.append(
        "Respond with a JSON object containing:\n"
        "{\n"
        '  "content": "the post content",\n'
        '  "hashtags": ["array", "of", "hashtags"],\n'
        '  "imagePrompt": "description for an image that would accompany this post"\n'
        "}"
    )
    return "\n".join(lines)


def fallback_hashtags(keywords: list[str], platform: str) -> list[str]:
    keyword_tags = [
        "#" + re.sub(r"\s+", "", keyword.strip())
        for keyword in keywords
        if keyword.strip()
    ]
    return (keyword_tags + PLATFORM_HASHTAGS.get(platform, []))[:MAX_FALLBACK_HASHTAGS]


async def generate_posts(
    request: PostGenerationRequest,
    company_profile: Optional[CompanyProfile] = None,
) -> list[GeneratedPost]:
    """
    One completion per platform. A platform whose call fails is skipped so
    the others still come back.
    """
    api_key = _require_api_key()
    posts: list[GeneratedPost] = []

    for platform in request.platforms:
        log = logger.bind(platform=platform)
        try:
            response = await acompletion(
                model=settings.AI_MODEL_POSTS,
                messages=[
                    {"role": "system", "content": POST_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": build_post_prompt(request, platform, company_profile),
                    },
                ],
                temperature=0.8,
                max_tokens=1000,
                api_key=api_key,
            )
            content = response.choices[0].message.content or ""
        except Exception as e:
            log.error("Post generation failed for platform", error=str(e))
            continue

        default_image_prompt = f"Professional {request.topic} image for {platform}"
        parsed = _extract_json(content)
        if parsed and parsed.get("content"):
            hashtags = parsed.get("hashtags") or []
            posts.append(
                GeneratedPost(
                    platform=platform,
                    content=str(parsed["content"]),
                    hashtags=[str(h) for h in hashtags]
                    if isinstance(hashtags, list)
                    else [],
                    image_prompt=str(parsed.get("imagePrompt") or default_image_prompt),
                )
            )
        else:
            log.warning("Model answer was not JSON, using raw text")
            posts.append(
                GeneratedPost(
                    platform=platform,
                    content=content,
                    hashtags=fallback_hashtags(request.keywords, platform),
                    image_prompt=default_image_prompt,
                )
            )

    return posts


def build_brand_prompt(
    request: BrandAnalysisRequest, company_profile: Optional[CompanyProfile] = None
) -> str:
    lines = [
        "Analyze the following company and extract brand voice, tone, and "
        "content strategy insights:",
        f"Company: {request.company_name}",
    ]
    if request.linkedin_company_url:
        lines.append(f"Company LinkedIn: {request.linkedin_company_url}")
    if request.linkedin_personal_url:
        lines.append(f"Founder LinkedIn: {request.linkedin_personal_url}")
    if company_profile is not None:
        if company_profile.industry:
            lines.append(f"Industry: {company_profile.industry}")
        if company_profile.description:
            lines.append(f"Description: {company_profile.description}")
    if request.sample_posts:
        lines.append(f"Sample Posts: {json.dumps(request.sample_posts)}")
    lines.append(
        "Provide a JSON response with:\n"
        "{\n"
        '  "voiceTone": "description of brand voice and tone",\n'
        '  "contentTopics": ["array", "of", "common", "topics"],\n'
        '  "postingStyle": "description of posting style and frequency",\n'
        '  "targetAudience": "description of target audience",\n'
        '  "industryInsights": "relevant industry context",\n'
        '  "recommendations": ["array", "of", "content", "recommendations"]\n'
        "}"
    )
    return "\n".join(lines)


async def analyze_brand(
    request: BrandAnalysisRequest, company_profile: Optional[CompanyProfile] = None
) -> dict[str, Any]:
    """
    Raises:
        ConfigurationError: No OpenAI key configured.

    The completion call itself is allowed to raise; only an unparsable
    answer falls back to the default analysis.
    """
    api_key = _require_api_key()
    response = await acompletion(
        model=settings.AI_MODEL_BRAND_ANALYSIS,
        messages=[
            {"role": "system", "content": BRAND_SYSTEM_PROMPT},
            {"role": "user", "content": build_brand_prompt(request, company_profile)},
        ],
        temperature=0.3,
        max_tokens=1500,
        api_key=api_key,
    )
    content = response.choices[0].message.content or ""

    analysis = _extract_json(content)
    if analysis is None:
        logger.warning("Failed to parse brand analysis, using default")
        return dict(DEFAULT_BRAND_ANALYSIS)
    return analysis
