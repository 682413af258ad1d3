from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from photodesk.domain.errors import RemoteServiceError
from photodesk.domain.models import EncodedImage
from photodesk.kernel.system.config import APP_CONFIG
from photodesk.kernel.system.logging import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class RetryableStatusError(Exception):
    """
    Transient HTTP status from the model endpoint (rate limit, overload).
    """

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"HTTP {status_code}: {body[:200]}")
        self.status_code = status_code


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(f"Remote call attempt {retry_state.attempt_number} failed ({exc}), retrying")


def extract_inline_image(data: Dict[str, Any]) -> Optional[EncodedImage]:
    """
    First inline image part of a generateContent response, or None.
    Accepts both the camelCase (REST) and snake_case field spellings.
    """
    for candidate in data.get("candidates") or []:
        parts = (candidate.get("content") or {}).get("parts") or []
        for part in parts:
            inline = part.get("inlineData") or part.get("inline_data")
            if not inline or not inline.get("data"):
                continue
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            uri = f"data:{mime_type};base64,{inline['data']}"
            return EncodedImage.from_data_uri(uri)
    return None


class GenerativeImageClient:
    """
    Sends an instruction (plus an optional inline image) to a generative
    image model and returns the image it produces.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        backoff: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else APP_CONFIG.ai_api_key
        self.model = model or APP_CONFIG.ai_model
        self.base_url = (base_url or APP_CONFIG.ai_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else APP_CONFIG.ai_timeout
        self.retries = retries if retries is not None else APP_CONFIG.ai_retries
        self.backoff = backoff
        self.http_client = http_client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_payload(self, prompt: str, image: Optional[EncodedImage] = None) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [{"text": prompt}]
        if image is not None:
            parts.append({"inline_data": {"mime_type": image.mime_type, "data": image.to_base64()}})
        return {
            "contents": [{"parts": parts}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

    async def _post_once(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = await client.post(
            self.endpoint,
            json=payload,
            headers={"x-goog-api-key": self.api_key},
            timeout=self.timeout,
        )
        if resp.status_code in RETRYABLE_STATUS:
            raise RetryableStatusError(resp.status_code, resp.text)
        resp.raise_for_status()
        return resp.json()

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> Dict[str, Any]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retries),
            wait=wait_exponential(multiplier=self.backoff, min=0, max=10),
            retry=retry_if_exception_type((httpx.TransportError, RetryableStatusError)),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._post_once(client, payload)
        raise AssertionError("unreachable")

    async def generate(
        self, prompt: str, image: Optional[EncodedImage] = None, operation: str = "generate"
    ) -> EncodedImage:
        """
        Raises RemoteServiceError on transport/HTTP failure or when the
        response holds no image.
        """
        if not self.api_key:
            raise RemoteServiceError("No API key configured for the image model", operation)

        payload = self.build_payload(prompt, image)
        logger.info(f"{operation}: calling {self.model}")
        try:
            if self.http_client is not None:
                data = await self._post(self.http_client, payload)
            else:
                async with httpx.AsyncClient() as client:
                    data = await self._post(client, payload)
        except (httpx.HTTPError, RetryableStatusError, ValueError) as e:
            raise RemoteServiceError(f"{operation} failed: {e}", operation) from e

        try:
            result = extract_inline_image(data)
        except ValueError as e:
            raise RemoteServiceError(f"{operation} returned an unreadable image: {e}", operation) from e
        if result is None:
            raise RemoteServiceError(f"{operation} failed: the model returned no image", operation)
        return result
