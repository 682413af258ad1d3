import asyncio
import os
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from photodesk.domain.errors import InputValidationError
from photodesk.domain.interfaces import ImageTransform, PipelineContext
from photodesk.domain.models import EditItem, EncodedImage, ItemStatus, PrintSheetSpec
from photodesk.domain.types import ImageBuffer
from photodesk.features.geometry.processor import CenterCropProcessor
from photodesk.features.units.logic import target_pixels
from photodesk.features.units.models import CropSettings
from photodesk.kernel.image.logic import decode_image, encode_png, sniff_mime
from photodesk.kernel.system.config import APP_CONFIG
from photodesk.kernel.system.logging import get_logger
from photodesk.services.ai.service import AIService
from photodesk.services.export.print import PrintResult, PrintService

logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchOptions:
    """
    Operations applied to every item, in this order: background removal,
    then crop/resize to the physical target.
    """

    remove_background: bool = False
    crop: Optional[CropSettings] = None
    crop_dpi: int = field(default_factory=lambda: APP_CONFIG.crop_dpi)
    max_workers: int = field(default_factory=lambda: APP_CONFIG.max_workers)

    def __post_init__(self) -> None:
        if self.crop_dpi <= 0:
            raise InputValidationError(f"DPI must be greater than zero, got {self.crop_dpi}")
        if self.max_workers < 1:
            raise InputValidationError(f"Worker count must be at least 1, got {self.max_workers}")


class BatchProcessor:
    """
    Runs the same edit over many images. A failing item is marked `error`
    with its message and never stops the others; succeeded items are
    skipped on later runs until they are reset.
    """

    def __init__(
        self,
        options: Optional[BatchOptions] = None,
        background_remover: Optional[ImageTransform] = None,
    ) -> None:
        self.options = options or BatchOptions()
        self._background_remover = background_remover
        self.items: List[EditItem] = []
        self._stop_requested = False

    # Intake

    def add_encoded(self, name: str, encoded: EncodedImage) -> EditItem:
        item = EditItem(id=uuid.uuid4().hex, name=name, source=encoded)
        self.items.append(item)
        logger.info(f"Queued {name} ({item.id})")
        return item

    def add_files(self, paths: Iterable[str]) -> List[EditItem]:
        """
        Queues files as-is. Unreadable or corrupt images are not rejected
        here: they fail at the decode step of their own run.
        """
        added = []
        for path in paths:
            with open(path, "rb") as f:
                payload = f.read()
            mime_type = sniff_mime(payload) or "application/octet-stream"
            added.append(self.add_encoded(os.path.basename(path), EncodedImage(mime_type, payload)))
        return added

    def get(self, item_id: str) -> EditItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise InputValidationError(f"No batch item with id '{item_id}'")

    # Control

    def request_stop(self) -> None:
        """
        No further items are started; items already running finish.
        """
        self._stop_requested = True
        logger.info("Stop requested, finishing in-flight items")

    def reset(self, item_id: Optional[str] = None) -> None:
        targets = [self.get(item_id)] if item_id is not None else self.items
        for item in targets:
            item.status = ItemStatus.PENDING
            item.result = None
            item.error = None

    def summary(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ItemStatus}
        for item in self.items:
            counts[item.status.value] += 1
        return counts

    # Processing

    def _remover(self) -> ImageTransform:
        if self._background_remover is None:
            self._background_remover = AIService().transform("remove_background")
        return self._background_remover

    async def _pipeline(self, item: EditItem) -> ImageBuffer:
        img = decode_image(item.source)

        if self.options.remove_background:
            edited = await self._remover()(encode_png(img))
            img = decode_image(edited)

        if self.options.crop is not None:
            target = target_pixels(self.options.crop, self.options.crop_dpi)
            h, w = img.shape[:2]
            context = PipelineContext(original_size=(w, h))
            img = CenterCropProcessor(target).process(img, context)

        return img

    async def _process_item(self, item: EditItem) -> None:
        item.status = ItemStatus.PROCESSING
        item.error = None
        logger.info(f"Processing {item.name}")
        try:
            item.result = await self._pipeline(item)
        except Exception as e:
            item.status = ItemStatus.ERROR
            item.result = None
            item.error = str(e) or e.__class__.__name__
            logger.error(f"{item.name} failed: {item.error}")
            return
        item.status = ItemStatus.SUCCESS
        h, w = item.result.shape[:2]
        logger.info(f"{item.name} done ({w}x{h})")

    async def run(self) -> Dict[str, int]:
        """
        Processes every pending/error item and returns the status summary.
        """
        if not self.items:
            raise InputValidationError("No images to process")
        self._stop_requested = False
        todo = [item for item in self.items if item.status != ItemStatus.SUCCESS]
        logger.info(f"Batch run: {len(todo)} to process, {len(self.items) - len(todo)} already done")

        if self.options.max_workers == 1:
            for item in todo:
                if self._stop_requested:
                    break
                await self._process_item(item)
        else:
            semaphore = asyncio.Semaphore(self.options.max_workers)

            async def worker(item: EditItem) -> None:
                async with semaphore:
                    if self._stop_requested:
                        return
                    await self._process_item(item)

            await asyncio.gather(*(worker(item) for item in todo))

        return self.summary()

    # Export

    def successful(self) -> List[EditItem]:
        return [item for item in self.items if item.status == ItemStatus.SUCCESS]

    def export_prints(self, sheet_spec: Optional[PrintSheetSpec] = None) -> PrintResult:
        """
        One print sheet per successful item. Items that do not fit the paper
        are listed in `failures`.
        """
        done = self.successful()
        if not done:
            raise InputValidationError("No successfully processed images to export")
        photos = []
        for item in done:
            assert item.result is not None, f"{item.name} succeeded without a result"
            photos.append((item.name, item.result))
        return PrintService.layout_prints(photos, sheet_spec or PrintSheetSpec())
