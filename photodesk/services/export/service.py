import os
from typing import List, Optional

from photodesk.domain.models import EncodedImage
from photodesk.domain.types import ImageBuffer
from photodesk.kernel.image.logic import encode_png
from photodesk.kernel.system.config import APP_CONFIG
from photodesk.kernel.system.logging import get_logger
from photodesk.services.export.print import PrintResult
from photodesk.services.export.templating import FilenameTemplater, base_name

logger = get_logger(__name__)


class ExportService:
    """
    Writes PNG exports (edited photos and print sheets) to an output directory.
    """

    def __init__(self, export_dir: Optional[str] = None, templater: Optional[FilenameTemplater] = None):
        self.export_dir = os.path.abspath(export_dir or APP_CONFIG.export_dir)
        self.templater = templater or FilenameTemplater()

    def _unique_path(self, stem: str) -> str:
        path = os.path.join(self.export_dir, f"{stem}.png")
        counter = 1
        while os.path.exists(path):
            path = os.path.join(self.export_dir, f"{stem}-{counter}.png")
            counter += 1
        return path

    def write(self, encoded: EncodedImage, context: dict, pattern: str) -> str:
        """
        Renders the file name from `pattern` and writes the encoded bytes.
        """
        os.makedirs(self.export_dir, exist_ok=True)
        stem = self.templater.render(pattern, context)
        out_path = self._unique_path(stem)
        with open(out_path, "wb") as out_f:
            out_f.write(encoded.payload)
        logger.info(f"Exported {out_path}")
        return out_path

    def export_edit(
        self,
        source_name: str,
        image: ImageBuffer,
        operation: str = "edit",
        pattern: Optional[str] = None,
    ) -> str:
        context = {"original_name": base_name(source_name), "operation": operation}
        return self.write(encode_png(image), context, pattern or APP_CONFIG.edit_filename_pattern)

    def export_sheets(
        self, result: PrintResult, paper: str, pattern: Optional[str] = None
    ) -> List[str]:
        paths = []
        for name, encoded in result.sheets:
            context = {"original_name": base_name(name), "operation": "print", "paper": paper}
            paths.append(self.write(encoded, context, pattern or APP_CONFIG.print_filename_pattern))
        return paths
