"""
Image lookup for article and plan illustrations via the image-search provider.
"""

from dataclasses import dataclass
from typing import List

from mvp_planner_server.fallback import extract_search_terms, section_image_urls
from mvp_planner_server.providers import IMAGE_SEARCH, ImageSearchRequest
from mvp_planner_server.rotating_client import RotatingClient


@dataclass
class ImageResult:
    topic: str
    url: str
    degraded: bool = False


class ImageService:
    """Resolves topics to image URLs with key rotation and offline fallback."""

    def __init__(self, client: RotatingClient):
        self.client = client

    async def get_image_url(self, topic: str, width: int = 1200, height: int = 600) -> ImageResult:
        """
        Look up an image for a topic.

        The search query is the first descriptive term of the topic, or
        "business" when the topic has none.
        """
        terms = extract_search_terms(topic)
        query = terms[0] if terms else "business"
        result = await self.client.invoke(
            IMAGE_SEARCH,
            ImageSearchRequest(query=query, width=width, height=height),
        )
        return ImageResult(topic=topic, url=result.value, degraded=result.degraded)

    async def hero_image(self, topic: str) -> ImageResult:
        return await self.get_image_url(topic, 1200, 600)

    def section_images(self, topic: str, count: int = 3) -> List[str]:
        """Keyless section images; no provider quota is spent on these."""
        return section_image_urls(topic, count=count)
