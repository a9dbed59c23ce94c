"""
Font handling for Media Rating Overlay.

Badge text is measured many times while sizes are guessed, so fonts are
cached by size. The first existing font in FONT_CANDIDATES is used; when
none is installed Pillow's built-in scalable font takes over.
"""

import threading
from pathlib import Path
from typing import Dict, Optional

from PIL import ImageFont

from .constants import logger, FONT_CANDIDATES

_font_cache: Dict[float, ImageFont.FreeTypeFont] = {}
_font_lock = threading.Lock()
_resolved_path: Optional[str] = None
_resolved = False


def resolve_font_path() -> Optional[str]:
    """Return the first font candidate present on disk, or None."""
    global _resolved_path, _resolved
    if _resolved:
        return _resolved_path
    for candidate in FONT_CANDIDATES:
        if candidate and Path(candidate).exists():
            _resolved_path = candidate
            break
    if _resolved_path:
        logger.info(f"FONT_OK path={_resolved_path}")
    else:
        logger.warning(f"FONT_MISSING checked={', '.join(c for c in FONT_CANDIDATES if c)} using=default")
    _resolved = True
    return _resolved_path


def get_font(size: float) -> ImageFont.FreeTypeFont:
    """Get a cached font instance for ``size`` points."""
    key = round(max(size, 1.0), 2)
    with _font_lock:
        font = _font_cache.get(key)
        if font is not None:
            return font

        path = resolve_font_path()
        if path:
            try:
                font = ImageFont.truetype(path, key)
            except OSError as e:
                logger.warning(f"FONT_LOAD_FAILED path={path} error={e}")
        if font is None:
            font = ImageFont.load_default(key)

        _font_cache[key] = font
        return font


def clear_font_cache() -> None:
    global _resolved_path, _resolved
    with _font_lock:
        _font_cache.clear()
        _resolved_path = None
        _resolved = False
