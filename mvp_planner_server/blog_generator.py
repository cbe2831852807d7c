"""
Blog post generation on top of the rotating content provider.

Posts are written for the MVP planner's audience of founders. The provider
answers with a JSON post; when no key can serve the call, or the answer is
not a valid post, a templated post is returned with degraded=True.
"""

import json
import zlib
from dataclasses import dataclass
from typing import List

from pydantic import ValidationError

from mvp_planner_server.fallback import build_fallback_blog_post
from mvp_planner_server.logging_config import get_logger
from mvp_planner_server.models import AffiliateLink, BlogPost, BlogPostRequest
from mvp_planner_server.mvp_generator import strip_code_fences
from mvp_planner_server.providers import CONTENT_GEN, TextGenerationRequest
from mvp_planner_server.rotating_client import RotatingClient

logger = get_logger(__name__)

TONE_INSTRUCTIONS = [
    "Write in a conversational, approachable tone like you're mentoring a friend",
    "Include personal anecdotes and real-world examples",
    "Use contractions and casual language while maintaining professionalism",
    "Add rhetorical questions to engage readers",
    "Include emotional elements and storytelling",
    "Use varied sentence structures and paragraph lengths",
    "Include practical tips and actionable advice",
]

PROMPT_TEMPLATE = """Write a comprehensive, engaging blog post about "{topic}" for an MVP generator platform.

{tone}

IMPORTANT REQUIREMENTS:
- Write like a human expert with real startup experience
- Include specific examples and case studies
- Include subheadings for better readability
- Write 1500-2000 words
- Add a compelling introduction and conclusion
- Include actionable takeaways
{affiliate_section}
Focus on providing genuine value to entrepreneurs and startup founders.

Return the content in this JSON format:
{{
  "title": "SEO-optimized title",
  "slug": "url-friendly-slug",
  "excerpt": "Compelling 2-sentence excerpt",
  "content": "Full blog post content in markdown",
  "metaTitle": "SEO meta title (under 60 chars)",
  "metaDescription": "SEO meta description (under 160 chars)",
  "keywords": ["keyword1", "keyword2", "keyword3", "keyword4", "keyword5"],
  "author": "MVP Generator AI Team"
}}
"""


@dataclass
class BlogPostResult:
    """Generated post and whether it came from the offline template."""
    post: BlogPost
    degraded: bool = False


def tone_for_topic(topic: str) -> str:
    """Pick a tone instruction; the same topic always gets the same tone."""
    return TONE_INSTRUCTIONS[zlib.crc32(topic.lower().encode("utf-8")) % len(TONE_INSTRUCTIONS)]


def build_prompt(request: BlogPostRequest) -> str:
    affiliate_section = ""
    if request.affiliate_links:
        lines = "\n".join(f"- {link.text}: {link.url}" for link in request.affiliate_links)
        affiliate_section = (
            "\nAFFILIATE INTEGRATION:\n"
            f"Naturally integrate these affiliate links where relevant:\n{lines}\n"
        )
    return PROMPT_TEMPLATE.format(
        topic=request.topic,
        tone=tone_for_topic(request.topic),
        affiliate_section=affiliate_section,
    )


def parse_post(text: str) -> BlogPost:
    """
    Parse provider text into a blog post.

    Raises:
        ValueError: If the text is not valid post JSON
    """
    try:
        data = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise ValueError(f"Post is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Post JSON must be an object")
    try:
        return BlogPost.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Post JSON has the wrong shape: {e.error_count()} errors") from e


def insert_affiliate_links(content: str, links: List[AffiliateLink]) -> str:
    """
    Place links the post does not mention yet into its latter half.

    Each link goes in as its own paragraph at 60% of the paragraphs.
    """
    for link in links:
        if link.url in content:
            continue
        paragraphs = content.split("\n\n")
        index = int(len(paragraphs) * 0.6)
        paragraphs.insert(index, f"*Recommended: [{link.text}]({link.url})*")
        content = "\n\n".join(paragraphs)
    return content


class BlogPostGenerator:
    """Generates blog posts through the content-gen provider."""

    def __init__(self, client: RotatingClient):
        self.client = client

    async def generate(self, request: BlogPostRequest) -> BlogPostResult:
        """
        Generate a blog post.

        Provider validation and transient errors propagate.
        """
        links = [link.model_dump() for link in request.affiliate_links]
        provider_request = TextGenerationRequest(
            prompt=build_prompt(request),
            context={
                "kind": "blog",
                "topic": request.topic,
                "affiliate_links": json.dumps(links),
            },
        )
        result = await self.client.invoke(CONTENT_GEN, provider_request)

        try:
            post = parse_post(result.value)
        except ValueError as e:
            logger.warning("blog_post_parse_failed", error=str(e), key_id=result.key_id)
            post = BlogPost.model_validate(build_fallback_blog_post(request.topic, links))
            return BlogPostResult(post=post, degraded=True)

        if not result.degraded:
            post.content = insert_affiliate_links(post.content, request.affiliate_links)
        return BlogPostResult(post=post, degraded=result.degraded)
