"""
Provider adapters for third-party APIs called with rotating keys.

Each adapter performs one outbound call with the secret it is given and
translates every failure into the closed error set from
mvp_planner_server.exceptions. classify_provider_error() is the only place
that looks at HTTP status codes or response bodies.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from mvp_planner_server.exceptions import (
    ProviderError,
    ProviderValidationError,
    QuotaExceededError,
    TransientProviderError,
)


CONTENT_GEN = "content-gen"
IMAGE_SEARCH = "image-search"
PROVIDERS = (CONTENT_GEN, IMAGE_SEARCH)

# Response body fragments that mean "this key or service is out of capacity"
QUOTA_MARKERS = (
    "resource_exhausted",
    "quota",
    "rate limit",
    "rate_limit",
    "too many requests",
    "overloaded",
)


@dataclass
class TextGenerationRequest:
    """Prompt for the content generation provider."""
    prompt: str
    temperature: float = 0.7
    max_output_tokens: int = 8192
    context: Dict[str, str] = field(default_factory=dict)


@dataclass
class ImageSearchRequest:
    """Query for the image search provider."""
    query: str
    width: int = 1200
    height: int = 600
    orientation: str = "landscape"


def classify_provider_error(exc: Exception, provider: str) -> ProviderError:
    """
    Map an httpx failure to a typed provider error.

    Args:
        exc: Exception raised while calling the provider
        provider: Provider name for error context

    Returns:
        QuotaExceededError, ProviderValidationError or TransientProviderError
    """
    if isinstance(exc, ProviderError):
        return exc

    if isinstance(exc, httpx.TimeoutException):
        return TransientProviderError(f"{provider} request timed out", provider=provider)

    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        try:
            body = exc.response.text.lower()
        except (httpx.ResponseNotRead, UnicodeDecodeError):
            body = ""

        if status_code in (429, 503) or any(marker in body for marker in QUOTA_MARKERS):
            return QuotaExceededError(
                f"{provider} quota or capacity exhausted (HTTP {status_code})",
                provider=provider,
                status_code=status_code,
            )
        if status_code >= 500:
            return TransientProviderError(
                f"{provider} server error (HTTP {status_code})",
                provider=provider,
                status_code=status_code,
            )
        return ProviderValidationError(
            f"{provider} rejected the request (HTTP {status_code})",
            provider=provider,
            status_code=status_code,
        )

    if isinstance(exc, httpx.TransportError):
        return TransientProviderError(f"{provider} connection failed: {exc}", provider=provider)

    if isinstance(exc, (ValueError, KeyError, IndexError, TypeError)):
        return ProviderValidationError(f"{provider} returned an unexpected payload: {exc}", provider=provider)

    return TransientProviderError(f"{provider} call failed: {exc}", provider=provider)


class ProviderAdapter(ABC):
    """
    One third-party operation callable with any key of its provider.

    Subclasses implement _call(); call() wraps it with error classification.
    """

    name: str = ""

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self.client = client

    async def call(self, secret: str, request: Any) -> Any:
        """
        Perform the provider operation with the given secret.

        Raises:
            QuotaExceededError: Key or provider out of capacity
            ProviderValidationError: Request rejected or response unusable
            TransientProviderError: Timeout or connection failure
        """
        try:
            if self.client is not None:
                return await self._call(self.client, secret, request)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await self._call(client, secret, request)
        except ProviderError:
            raise
        except Exception as e:
            raise classify_provider_error(e, self.name) from e

    @abstractmethod
    async def _call(self, client: httpx.AsyncClient, secret: str, request: Any) -> Any:
        pass


class GeminiContentProvider(ProviderAdapter):
    """Text generation through the Gemini generateContent REST endpoint."""

    name = CONTENT_GEN

    def __init__(
        self,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        model: str = "gemini-1.5-flash",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.base_url = base_url.rstrip("/")
        self.model = model

    async def _call(self, client: httpx.AsyncClient, secret: str, request: TextGenerationRequest) -> str:
        if not request.prompt or not request.prompt.strip():
            raise ProviderValidationError("prompt must not be empty", provider=self.name)

        response = await client.post(
            f"{self.base_url}/models/{self.model}:generateContent",
            params={"key": secret},
            json={
                "contents": [{"parts": [{"text": request.prompt}]}],
                "generationConfig": {
                    "temperature": request.temperature,
                    "topK": 40,
                    "topP": 0.95,
                    "maxOutputTokens": request.max_output_tokens,
                },
            },
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()

        data = response.json()
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise ProviderValidationError("No content generated by Gemini", provider=self.name)
        if not text:
            raise ProviderValidationError("No content generated by Gemini", provider=self.name)
        return text


class UnsplashImageProvider(ProviderAdapter):
    """Random photo lookup through the Unsplash API."""

    name = IMAGE_SEARCH

    def __init__(
        self,
        base_url: str = "https://api.unsplash.com",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.base_url = base_url.rstrip("/")

    async def _call(self, client: httpx.AsyncClient, secret: str, request: ImageSearchRequest) -> str:
        if not request.query or not request.query.strip():
            raise ProviderValidationError("query must not be empty", provider=self.name)

        response = await client.get(
            f"{self.base_url}/photos/random",
            params={"query": request.query, "orientation": request.orientation},
            headers={"Authorization": f"Client-ID {secret}", "Accept-Version": "v1"},
            timeout=self.timeout,
        )
        response.raise_for_status()

        raw_url = response.json()["urls"]["raw"]
        return (
            f"{raw_url}&w={request.width}&h={request.height}"
            f"&fit=crop&crop=entropy&auto=format&q=80"
        )


def create_http_client(connect_retries: int = 1, timeout: float = 30.0) -> httpx.AsyncClient:
    """
    Shared client for provider adapters.

    The transport retries failed connections; HTTP error responses are
    never retried here.
    """
    transport = httpx.AsyncHTTPTransport(retries=connect_retries)
    return httpx.AsyncClient(transport=transport, timeout=timeout)
