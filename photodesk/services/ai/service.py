from typing import Awaitable, Callable, Dict, Optional

from photodesk.domain.errors import InputValidationError
from photodesk.domain.interfaces import ImageTransform
from photodesk.domain.models import EncodedImage
from photodesk.kernel.system.config import APP_CONFIG
from photodesk.kernel.system.logging import get_logger
from photodesk.services.ai.client import GenerativeImageClient
from photodesk.services.ai.removebg import RemoveBgClient

logger = get_logger(__name__)

_KEEP_SIZE = "Keep the exact pixel dimensions of the input photo."

EDIT_PROMPTS: Dict[str, str] = {
    "remove_background": (
        "Remove the background from this photo. Keep the person's head, hair, neck and "
        "shoulders intact with clean edges and make everything else fully transparent. "
        "Return a PNG with an alpha channel. " + _KEEP_SIZE
    ),
    "enhance_face": (
        "Enhance the faces in this photo: improve skin texture, lighting and overall "
        "appearance while keeping a natural look. " + _KEEP_SIZE
    ),
    "remove_blemishes": (
        "Retouch the faces in this photo by removing blemishes, wrinkles and other minor "
        "imperfections. Preserve the person's character. " + _KEEP_SIZE
    ),
    "upscale": (
        "Increase the sharpness and fine detail of this photo as a high-quality upscale "
        "without introducing artifacts or changing the content."
    ),
    "correct_color": (
        "Correct the colours of this photo so they are vibrant and balanced while staying "
        "natural. " + _KEEP_SIZE
    ),
}

BACKGROUND_PROMPT = "Generate a photographic background image of: {prompt}. No people, no text."

BACKENDS = ("gemini", "removebg")


class _BoundTransform:
    """
    One remote edit operation bound to its backend call.
    """

    def __init__(self, operation: str, call: Callable[[EncodedImage], Awaitable[EncodedImage]]) -> None:
        self.operation = operation
        self._call = call

    async def __call__(self, image: EncodedImage) -> EncodedImage:
        return await self._call(image)

    def __repr__(self) -> str:
        return f"<ImageTransform {self.operation}>"


class AIService:
    """
    Remote image edits. Every operation either returns a new encoded image
    or raises RemoteServiceError; the caller's image is never modified.
    """

    def __init__(
        self,
        client: Optional[GenerativeImageClient] = None,
        removebg: Optional[RemoveBgClient] = None,
        background_backend: Optional[str] = None,
    ) -> None:
        self.client = client or GenerativeImageClient()
        self.removebg = removebg
        backend = (background_backend or APP_CONFIG.background_backend).lower()
        if backend not in BACKENDS:
            raise InputValidationError(f"Unknown background backend '{backend}' (expected one of: {', '.join(BACKENDS)})")
        self.background_backend = backend

    async def _edit(self, operation: str, image: EncodedImage) -> EncodedImage:
        return await self.client.generate(EDIT_PROMPTS[operation], image, operation=operation)

    async def remove_background(self, image: EncodedImage) -> EncodedImage:
        if self.background_backend == "removebg":
            backend = self.removebg or RemoveBgClient()
            return await backend(image)
        return await self._edit("remove_background", image)

    async def enhance_face(self, image: EncodedImage) -> EncodedImage:
        return await self._edit("enhance_face", image)

    async def remove_blemishes(self, image: EncodedImage) -> EncodedImage:
        return await self._edit("remove_blemishes", image)

    async def upscale(self, image: EncodedImage) -> EncodedImage:
        return await self._edit("upscale", image)

    async def correct_color(self, image: EncodedImage) -> EncodedImage:
        return await self._edit("correct_color", image)

    async def generate_background(self, prompt: str) -> EncodedImage:
        prompt = (prompt or "").strip()
        if not prompt:
            raise InputValidationError("Background prompt must not be empty")
        return await self.client.generate(
            BACKGROUND_PROMPT.format(prompt=prompt), operation="generate_background"
        )

    def transform(self, operation: str) -> ImageTransform:
        if operation not in EDIT_PROMPTS:
            raise InputValidationError(f"Unknown AI operation '{operation}'")
        return _BoundTransform(operation, getattr(self, operation))
