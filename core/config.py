"""
Pipeline Configuration
======================

Settings for the page-level extraction pipeline. Defaults can be overridden
from the environment:

    LAB_OCR_WORKERS   pages recognized concurrently (default 2)
    LAB_OCR_TIMEOUT   seconds allowed per page OCR call (default: no limit)
    LAB_OCR_DPI       rasterization DPI for scanned PDF pages (default 200)
    TESSERACT_CMD     path to the tesseract executable
    POPPLER_PATH      directory holding the poppler binaries (pdf2image)
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from medical.config import ParserConfig


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str) -> Optional[float]:
    raw = os.environ.get(name, '').strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class PipelineConfig:
    """Settings for LabExtractionPipeline"""
    max_workers: int = 2
    ocr_timeout: Optional[float] = None
    dpi: int = 200
    tesseract_cmd: Optional[str] = None
    poppler_path: Optional[str] = None
    parser: ParserConfig = field(default_factory=ParserConfig)

    @classmethod
    def from_env(cls, parser: Optional[ParserConfig] = None) -> 'PipelineConfig':
        """Build a config from LAB_OCR_* / TESSERACT_CMD / POPPLER_PATH"""
        return cls(
            max_workers=max(1, _env_int('LAB_OCR_WORKERS', 2)),
            ocr_timeout=_env_float('LAB_OCR_TIMEOUT'),
            dpi=_env_int('LAB_OCR_DPI', 200),
            tesseract_cmd=os.environ.get('TESSERACT_CMD') or None,
            poppler_path=os.environ.get('POPPLER_PATH') or None,
            parser=parser or ParserConfig(),
        )
