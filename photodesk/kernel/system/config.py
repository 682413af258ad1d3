import os
from dataclasses import dataclass
from typing import Tuple

# Paper presets in inches (width, height), landscape orientation
PAPER_SIZES_IN = {
    "4x6": (6.0, 4.0),
    "5x7": (7.0, 5.0),
}

# Print sheets are always rendered at this resolution
PRINT_DPI = 300

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
REMOVEBG_API_URL = "https://api.remove.bg/v1.0/removebg"


@dataclass
class AppConfig:
    crop_dpi: int
    print_dpi: int
    cutting_margin_mm: float
    border_mm: float
    border_color: Tuple[int, int, int, float]
    max_workers: int
    ai_api_key: str
    ai_base_url: str
    ai_model: str
    ai_timeout: float
    ai_retries: int
    removebg_api_key: str
    removebg_url: str
    removebg_timeout: float
    background_backend: str
    export_dir: str
    print_filename_pattern: str
    edit_filename_pattern: str


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def load_app_config() -> AppConfig:
    """
    Builds the application configuration from environment variables.
    """
    return AppConfig(
        crop_dpi=_env_int("PHOTODESK_CROP_DPI", 300),
        print_dpi=PRINT_DPI,
        cutting_margin_mm=_env_float("PHOTODESK_CUTTING_MARGIN_MM", 2.0),
        border_mm=_env_float("PHOTODESK_BORDER_MM", 0.2),
        border_color=(200, 200, 200, 0.7),
        max_workers=max(1, _env_int("PHOTODESK_MAX_WORKERS", 1)),
        ai_api_key=os.getenv("PHOTODESK_AI_API_KEY", os.getenv("GOOGLE_API_KEY", "")),
        ai_base_url=os.getenv("PHOTODESK_AI_BASE_URL", GEMINI_API_BASE),
        ai_model=os.getenv(
            "PHOTODESK_AI_MODEL", "gemini-2.0-flash-preview-image-generation"
        ),
        ai_timeout=_env_float("PHOTODESK_AI_TIMEOUT", 60.0),
        ai_retries=max(1, _env_int("PHOTODESK_AI_RETRIES", 3)),
        removebg_api_key=os.getenv("PHOTODESK_REMOVEBG_API_KEY", ""),
        removebg_url=os.getenv("PHOTODESK_REMOVEBG_URL", REMOVEBG_API_URL),
        removebg_timeout=30.0,
        background_backend=os.getenv("PHOTODESK_BACKGROUND_BACKEND", "gemini").lower(),
        export_dir=os.path.abspath(os.getenv("PHOTODESK_EXPORT_DIR", "export")),
        print_filename_pattern="{{ original_name }}-print-{{ paper }}",
        edit_filename_pattern="{{ original_name }}-{{ operation }}",
    )


# Global application constants
APP_CONFIG = load_app_config()
