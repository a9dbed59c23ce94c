"""
Poster compositor for Media Rating Overlay.

This module provides:
- PosterConfig: canvas geometry and logo image locations
- ImageService: open, resize, create canvases and save composited posters
- FrameOverlay / BarOverlay: the two overlay variants
- OverlayService: open the original poster and apply the library's overlay
- PosterGenerator: overlay + badge band -> ``<name>-poster.png``
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from PIL import Image, ImageDraw

from .cancellation import CancelToken
from .config import LibraryConfig
from .constants import (
    logger,
    ASSETS_DIR,
    LOGO_IMDB,
    LOGO_RT_AUDIENCE,
    LOGO_RT_AUDIENCE_LOW,
    LOGO_RT_CRITIC,
    LOGO_RT_CRITIC_LOW,
    LOGO_TMDB,
    OVERLAY_BAR,
    OVERLAY_FRAME,
    POSTER_FILE_MODE,
    POSTER_HEIGHT,
    POSTER_MARGIN_LEFT,
    POSTER_MARGIN_RIGHT,
    POSTER_MARKER_FROM,
    POSTER_WIDTH,
)
from .errors import OverlayError, PosterError
from .files import FileManager
from .badges import LogoService
from .models import Item, Logo, LogoDimensions


@dataclass
class PosterConfig:
    width: int = POSTER_WIDTH
    height: int = POSTER_HEIGHT
    margin_left: int = POSTER_MARGIN_LEFT
    margin_right: int = POSTER_MARGIN_RIGHT
    assets_dir: Path = field(default_factory=lambda: ASSETS_DIR)

    def logo_path(self, name: str) -> str:
        return str(Path(self.assets_dir) / name)

    @property
    def rt_critic(self) -> str:
        return self.logo_path(LOGO_RT_CRITIC)

    @property
    def rt_critic_low(self) -> str:
        return self.logo_path(LOGO_RT_CRITIC_LOW)

    @property
    def rt_audience(self) -> str:
        return self.logo_path(LOGO_RT_AUDIENCE)

    @property
    def rt_audience_low(self) -> str:
        return self.logo_path(LOGO_RT_AUDIENCE_LOW)

    @property
    def imdb(self) -> str:
        return self.logo_path(LOGO_IMDB)

    @property
    def tmdb(self) -> str:
        return self.logo_path(LOGO_TMDB)


# ============================================================================
# Images
# ============================================================================

class ImageService:
    def __init__(self, config: PosterConfig, file_manager: FileManager):
        self.config = config
        self.file_manager = file_manager

    @staticmethod
    def open_image(file_path: str) -> Image.Image:
        try:
            with Image.open(file_path) as img:
                return img.convert('RGBA')
        except OSError as e:
            logger.error(f"IMAGE_OPEN_FAILED path={file_path} error={e}")
            raise PosterError('open_image', e)

    @staticmethod
    def resize_image(img: Image.Image, width: int, height: int) -> Image.Image:
        """LANCZOS resize; a side given as 0 follows the aspect ratio."""
        if width <= 0 and height <= 0:
            return img.copy()
        if width <= 0:
            width = max(1, round(img.width * height / img.height))
        elif height <= 0:
            height = max(1, round(img.height * width / img.width))
        return img.resize((width, height), Image.Resampling.LANCZOS)

    @staticmethod
    def create_context(width: int, height: int) -> Image.Image:
        """Opaque black RGBA canvas."""
        return Image.new('RGBA', (width, height), (0, 0, 0, 255))

    def save_image(self, img: Image.Image, file_path: str) -> str:
        """Write ``img`` as the composited poster for ``file_path``; returns its path."""
        if POSTER_MARKER_FROM not in os.path.basename(file_path):
            # Without the marker the derived path could be the original itself
            raise PosterError('save_image', ValueError(f"{file_path} is not an original poster"))

        poster_path = self.file_manager.generate_poster_file_path(file_path, '.png')
        self.file_manager.backup_existing_poster(poster_path)

        logger.debug(f"POSTER_WRITE path={poster_path}")
        try:
            img.save(poster_path, 'PNG')
            os.chmod(poster_path, POSTER_FILE_MODE)
        except OSError as e:
            logger.error(f"POSTER_WRITE_FAILED path={poster_path} error={e}")
            raise PosterError('save_image', e)
        return poster_path


# ============================================================================
# Overlays
# ============================================================================

class FrameOverlay:
    """Source shrunk by the band height and centred on black, band below."""

    def __init__(self, config: PosterConfig, image_service: ImageService):
        self.config = config
        self.image_service = image_service

    def apply(self, img: Image.Image, canvas: Image.Image, library_config: LibraryConfig) -> None:
        ImageDraw.Draw(canvas).rectangle([(0, 0), (self.config.width, self.config.height)], fill=(0, 0, 0, 255))
        diff_width = self.config.width * library_config.overlay.height
        resized = self.image_service.resize_image(img, int(self.config.width - diff_width), 0)
        canvas.paste(resized, (int(diff_width / 2), 0), resized)


class BarOverlay:
    """Source at full width with a translucent black bar over the bottom."""

    def __init__(self, config: PosterConfig, image_service: ImageService):
        self.config = config
        self.image_service = image_service

    def apply(self, img: Image.Image, canvas: Image.Image, library_config: LibraryConfig) -> None:
        resized = self.image_service.resize_image(img, self.config.width, 0)
        canvas.paste(resized, (0, 0), resized)

        bar_height = self.config.height * library_config.overlay.height
        start = self.config.height - bar_height
        alpha = int(library_config.overlay.transparency * 255)

        layer = Image.new('RGBA', canvas.size, (0, 0, 0, 0))
        ImageDraw.Draw(layer).rectangle([(0, start), (canvas.width, start + bar_height)], fill=(0, 0, 0, alpha))
        canvas.alpha_composite(layer)


def create_overlay(overlay_type: str, config: PosterConfig, image_service: ImageService):
    if overlay_type == OVERLAY_FRAME:
        return FrameOverlay(config, image_service)
    if overlay_type == OVERLAY_BAR:
        return BarOverlay(config, image_service)
    raise PosterError('create_overlay', ValueError(f"unknown overlay type: {overlay_type}"))


class OverlayService:
    def __init__(self, config: PosterConfig, image_service: ImageService):
        self.config = config
        self.image_service = image_service

    def create_canvas_with_overlay(self, file_path: str, item: Item, library_config: LibraryConfig) -> Image.Image:
        img = self.image_service.open_image(file_path)
        canvas = self.image_service.create_context(self.config.width, self.config.height)
        overlay = create_overlay(library_config.overlay.type, self.config, self.image_service)
        logger.debug(f"OVERLAY_APPLY item={item.id} type={library_config.overlay.type}")
        overlay.apply(img, canvas, library_config)
        return canvas


# ============================================================================
# Generator
# ============================================================================

class PosterGenerator:
    """
    Produces the composited poster for an item.

    Badges come from the logo service of the rating service whose name
    matches each rating. A rating without a matching service, or whose logo
    service fails, is left off the poster.
    """

    def __init__(
        self,
        config: PosterConfig,
        image_service: ImageService,
        overlay_service: OverlayService,
        logo_service: LogoService,
        rating_services: list,
    ):
        self.config = config
        self.image_service = image_service
        self.overlay_service = overlay_service
        self.logo_service = logo_service
        self.rating_services = rating_services

    def apply_logos(self, token: Optional[CancelToken], file_path: str, library_config: LibraryConfig,
                    item: Item) -> str:
        if not item.ratings:
            raise PosterError('position_logos', ValueError('no logos to position'))

        canvas = self.overlay_service.create_canvas_with_overlay(file_path, item, library_config)

        area_height = self.config.height * library_config.overlay.height
        area_width = float(self.config.width - self.config.margin_left * 2)
        dimensions = LogoDimensions(area_width=area_width / len(item.ratings), area_height=area_height)
        logger.debug(
            f"LOGO_AREA item={item.id} width={area_width:.1f} height={area_height:.1f} "
            f"logos={len(item.ratings)}"
        )

        logos = self.build_logos(token, item, dimensions)
        band = self.logo_service.position_logos(logos, area_width, area_height)
        canvas.paste(band, (self.config.margin_left, int(self.config.height - area_height)), band)

        return self.image_service.save_image(canvas, file_path)

    def build_logos(self, token: Optional[CancelToken], item: Item, dimensions: LogoDimensions) -> List[Logo]:
        logos: List[Logo] = []
        for rating in item.ratings:
            service = next((s for s in self.rating_services if s.name == rating.name), None)
            if service is None or service.logo is None:
                logger.debug(f"LOGO_SERVICE_MISSING item={item.id} rating={rating.name}")
                continue
            try:
                logos.extend(service.logo.get_logos(token, [rating], item.id, dimensions))
            except (OverlayError, OSError, ValueError) as e:
                logger.debug(f"LOGO_SKIPPED item={item.id} rating={rating.name} error={e}")
        return logos
