from typing import Protocol, Any, runtime_checkable
from dataclasses import dataclass, field
from photodesk.domain.models import EncodedImage
from photodesk.domain.types import ImageBuffer, Dimensions


@dataclass
class PipelineContext:
    """
    Shared state passed through a local processing pipeline.
    """

    original_size: Dimensions

    # Values recorded by steps for downstream consumers (e.g. applied rotation)
    metrics: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class IProcessor(Protocol):
    """
    Interface for any local (synchronous) image processing step.
    """

    def process(self, image: ImageBuffer, context: PipelineContext) -> ImageBuffer: ...


@runtime_checkable
class ImageTransform(Protocol):
    """
    A remote, one-shot image edit. Raises RemoteServiceError when no image comes back.
    """

    async def __call__(self, image: EncodedImage) -> EncodedImage: ...
