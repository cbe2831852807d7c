"""
Pydantic models for input validation and output serialization.

Plan models use camelCase aliases so provider JSON and API responses share
one shape; both snake_case and camelCase are accepted on input.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _clean_text(v: str) -> str:
    v = v.strip()
    if any(ord(c) < 32 and c not in "\n\t" for c in v):
        raise ValueError("Text contains invalid control characters")
    return v


class MvpPlanRequest(CamelModel):
    """
    Request model for MVP plan generation.

    Validations:
    - Idea: 10-2000 chars after trimming
    - Industry, audience, budget: 1-100 chars
    - No control characters
    """

    idea: str = Field(
        ...,
        min_length=10,
        max_length=2000,
        description="Startup idea description",
        examples=["A marketplace connecting home cooks with office workers for lunch"],
    )
    industry: str = Field(..., min_length=1, max_length=100, examples=["Food & Beverage"])
    target_audience: str = Field(..., min_length=1, max_length=100, examples=["Office workers"])
    budget: str = Field(..., min_length=1, max_length=100, examples=["$10,000 - $50,000"])

    @field_validator("idea", "industry", "target_audience", "budget", mode="before")
    @classmethod
    def validate_text(cls, v: Any) -> Any:
        """Trim whitespace and reject control characters."""
        if isinstance(v, str):
            return _clean_text(v)
        return v


class TechStack(CamelModel):
    frontend: str
    backend: str
    database: str
    payment: Optional[str] = None
    hosting: Optional[str] = None


class Timeline(CamelModel):
    mvp: str
    launch: str
    growth: str


class EstimatedCost(CamelModel):
    development: str
    monthly: str


class MarketAnalysis(CamelModel):
    target_market: str
    competition: str
    opportunity: str


class MvpPlan(CamelModel):
    """MVP plan as produced by the content provider or the fallback."""

    idea: Optional[str] = None
    core_features: List[str] = Field(..., min_length=1)
    tech_stack: TechStack
    monetization_strategy: str
    timeline: Timeline
    estimated_cost: EstimatedCost
    market_analysis: MarketAnalysis
    next_steps: List[str] = Field(..., min_length=1)


class MvpPlanResponse(CamelModel):
    """Response for MVP plan generation."""
    plan: MvpPlan
    degraded: bool = Field(
        default=False,
        description="True when the plan came from the offline template instead of the AI provider",
    )


class ImageResponse(CamelModel):
    """Response for image lookup."""
    topic: str
    url: str
    degraded: bool = False


class AffiliateLink(CamelModel):
    text: str = Field(..., min_length=1, max_length=100)
    url: str = Field(..., min_length=1, max_length=500)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Only http(s) links."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v


class BlogPostRequest(CamelModel):
    """
    Request model for blog post generation.

    Validations:
    - Topic: 3-200 chars after trimming, no control characters
    - At most 10 affiliate links
    """

    topic: str = Field(
        ...,
        min_length=3,
        max_length=200,
        examples=["How to Validate Your Startup Idea Before Building"],
    )
    affiliate_links: List[AffiliateLink] = Field(default_factory=list, max_length=10)

    @field_validator("topic", mode="before")
    @classmethod
    def validate_topic(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _clean_text(v)
        return v


class BlogPost(CamelModel):
    """Blog post as produced by the content provider or the fallback."""

    title: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    excerpt: str
    content: str = Field(..., min_length=1)
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    author: str = "MVP Generator AI Team"


class BlogPostResponse(CamelModel):
    """Response for blog post generation."""
    post: BlogPost
    degraded: bool = False


class KeyStats(CamelModel):
    """Aggregate key statistics for one provider."""
    provider: str
    total: int
    active: int
    quota_reached: int
    total_usage: int
    quota: int
    keys: List[Dict[str, Any]] = Field(default_factory=list)


class ErrorResponse(CamelModel):
    """Error body returned for provider failures."""
    detail: str
    provider: Optional[str] = None
    request_id: Optional[str] = None
