import base64
import binascii
from typing import Optional

import httpx

from photodesk.domain.errors import InputValidationError, RemoteServiceError
from photodesk.domain.models import EncodedImage
from photodesk.kernel.image.logic import encoded_from_bytes
from photodesk.kernel.system.config import APP_CONFIG
from photodesk.kernel.system.logging import get_logger

logger = get_logger(__name__)

OPERATION = "remove_background"


class RemoveBgClient:
    """
    Dedicated background-removal backend (remove.bg). Returns a PNG cut-out
    with a transparent background.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else APP_CONFIG.removebg_api_key
        self.url = url or APP_CONFIG.removebg_url
        self.timeout = timeout if timeout is not None else APP_CONFIG.removebg_timeout
        self.http_client = http_client

    @staticmethod
    def validate(image: EncodedImage) -> str:
        """
        Checks the input is an image with a well-formed base64 payload and
        returns that payload.
        """
        if not image.mime_type.startswith("image/"):
            raise InputValidationError(f"Expected an image, got '{image.mime_type}'")
        encoded = image.to_base64()
        try:
            base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InputValidationError(f"Image payload is not valid base64: {e}")
        return encoded

    async def _send(self, client: httpx.AsyncClient, encoded: str) -> httpx.Response:
        return await client.post(
            self.url,
            headers={"X-Api-Key": self.api_key},
            data={"image_file_b64": encoded, "size": "auto", "format": "png"},
            timeout=self.timeout,
        )

    async def __call__(self, image: EncodedImage) -> EncodedImage:
        if not self.api_key:
            raise RemoteServiceError("No remove.bg API key configured", OPERATION)
        encoded = self.validate(image)

        logger.info(f"{OPERATION}: calling remove.bg")
        try:
            if self.http_client is not None:
                resp = await self._send(self.http_client, encoded)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await self._send(client, encoded)
        except httpx.TimeoutException as e:
            raise RemoteServiceError(f"Background removal timed out after {self.timeout:g}s", OPERATION) from e
        except httpx.HTTPError as e:
            raise RemoteServiceError(f"Background removal failed: {e}", OPERATION) from e

        if resp.status_code != 200:
            raise RemoteServiceError(
                f"Background removal failed: HTTP {resp.status_code} {self._error_detail(resp)}", OPERATION
            )
        try:
            return encoded_from_bytes(resp.content)
        except InputValidationError as e:
            raise RemoteServiceError(f"Background removal returned no image: {e}", OPERATION) from e

    @staticmethod
    def _error_detail(resp: httpx.Response) -> str:
        try:
            errors = resp.json().get("errors") or []
        except ValueError:
            return resp.text[:200]
        return "; ".join(str(err.get("title", err)) for err in errors if isinstance(err, dict))
