"""
Badge rendering for Media Rating Overlay.

A badge is a provider logo followed by its score text. This module provides:
- LogoImageCreator: fit a logo image into its share of the logo band
- TextGuesser: estimate the largest font size whose widest text still fits
- TextCreator: draw shadowed score text on a transparent canvas
- LogoCreator: build one badge (logo image + text spec)
- LogoService: lay every badge out evenly across the band

All canvases are RGBA Pillow images. Sizes are computed as floats and
truncated to whole pixels only when a canvas is created.
"""

from pathlib import Path
from typing import List, Optional, Tuple

from PIL import Image, ImageDraw

from .constants import (
    logger,
    LOGO_AREA_WIDTH_FACTOR,
    LOGO_FALLBACK_SIZE,
    LOGO_FALLBACK_STYLES,
    LOGO_IMAGE_MARGIN,
    LOGO_IMAGE_REDUCTION,
    LOGO_IMAGE_STEP_REDUCTION,
    MIN_FONT_POINTS,
    MIN_LOGO_DIMENSION,
    TEXT_AREA_REDUCTION,
    TEXT_MARGIN,
    TEXT_POINTS_RATIO_DEFAULT,
    TEXT_POINTS_RATIOS,
    TEXT_SAMPLE_DEFAULT,
    TEXT_SAMPLES,
    TEXT_STEP_REDUCTION,
)
from .errors import PosterError
from .fonts import get_font
from .models import Logo, LogoDimensions, TextSpec

TEXT_COLOR = (255, 255, 255, 255)
TEXT_SHADOW_COLOR = (0, 0, 0, 255)


def measure_text(text: str, points: float) -> Tuple[float, float]:
    """Width (advance) and ink height of ``text`` at ``points``."""
    font = get_font(points)
    _, top, _, bottom = font.getbbox(text)
    return font.getlength(text), bottom - top


def _hex_to_rgba(color: str, alpha: int = 255) -> Tuple[int, int, int, int]:
    return int(color[1:3], 16), int(color[3:5], 16), int(color[5:7], 16), alpha


def create_text_badge(
    text: str,
    width: int = LOGO_FALLBACK_SIZE[0],
    height: int = LOGO_FALLBACK_SIZE[1],
    bg_color: str = '#000000',
    text_color: str = '#FFFFFF',
) -> Image.Image:
    """
    Create a simple text badge.

    Stands in for a provider logo whose PNG is not installed. The label is
    centred on a solid rounded rectangle.
    """
    badge = Image.new('RGBA', (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(badge)
    draw.rounded_rectangle([(0, 0), (width - 1, height - 1)], radius=height // 6, fill=_hex_to_rgba(bg_color))

    points = height * 0.6
    text_width, _ = measure_text(text, points)
    while text_width > width * 0.85 and points > MIN_FONT_POINTS:
        points *= TEXT_STEP_REDUCTION
        text_width, _ = measure_text(text, points)

    font = get_font(points)
    _, top, _, bottom = font.getbbox(text)
    x = (width - text_width) / 2
    y = (height - (top + bottom)) / 2
    draw.text((x, y), text, fill=_hex_to_rgba(text_color), font=font)
    return badge


def open_logo_image(logo_path: str) -> Image.Image:
    """Open a logo PNG; known logos that are not installed become text badges."""
    path = Path(logo_path)
    if path.exists():
        with Image.open(path) as img:
            return img.convert('RGBA')
    style = LOGO_FALLBACK_STYLES.get(path.name)
    if style is None:
        logger.error(f"LOGO_MISSING path={logo_path}")
        raise FileNotFoundError(f"logo image not found: {logo_path}")
    label, bg_color, text_color = style
    logger.debug(f"LOGO_FALLBACK path={logo_path} label={label}")
    return create_text_badge(label, bg_color=bg_color, text_color=text_color)


def _resize(img: Image.Image, width: float, height: float) -> Image.Image:
    """Resize with LANCZOS; a zero side keeps the aspect ratio."""
    w, h = img.size
    new_w, new_h = int(width), int(height)
    if new_w <= 0 and new_h <= 0:
        return img.copy()
    if new_w <= 0:
        new_w = max(1, round(w * new_h / h))
    elif new_h <= 0:
        new_h = max(1, round(h * new_w / w))
    return img.resize((new_w, new_h), Image.Resampling.LANCZOS)


# ============================================================================
# Logo image
# ============================================================================

class LogoImageCreator:
    """Scales a logo image into its slot and pads it with a side margin."""

    def create_context(self, area_width: float, area_height: float, logo_path: str) -> Image.Image:
        logo_image = open_logo_image(logo_path)
        image_area_width = area_width * LOGO_AREA_WIDTH_FACTOR
        resized = self.determine_resize_strategy(logo_image, image_area_width, area_height)
        return self.create_context_with_image(resized, area_height)

    def determine_resize_strategy(self, logo_image: Image.Image, image_area_width: float,
                                  area_height: float) -> Image.Image:
        width, height = logo_image.size
        if image_area_width > area_height:
            # Horizontal slot
            if height > width:
                return self.resize_by_height(area_height * LOGO_IMAGE_REDUCTION, logo_image, image_area_width)
            return self.resize_by_width(image_area_width * LOGO_IMAGE_REDUCTION, logo_image, area_height)
        # Vertical or square slot
        if height <= width:
            return self.resize_by_width(image_area_width * LOGO_IMAGE_REDUCTION, logo_image, area_height)
        return self.resize_by_height(area_height * LOGO_IMAGE_REDUCTION, logo_image, image_area_width)

    @staticmethod
    def resize_by_height(new_height: float, logo_image: Image.Image, image_area_width: float) -> Image.Image:
        limit = image_area_width * (1 - LOGO_IMAGE_MARGIN)
        while True:
            resized = _resize(logo_image, 0, new_height)
            if resized.width <= limit or new_height <= MIN_LOGO_DIMENSION:
                return resized
            new_height *= LOGO_IMAGE_STEP_REDUCTION

    @staticmethod
    def resize_by_width(new_width: float, logo_image: Image.Image, area_height: float) -> Image.Image:
        limit = area_height * (1 - LOGO_IMAGE_MARGIN)
        while True:
            resized = _resize(logo_image, new_width, 0)
            if resized.height <= limit or new_width <= MIN_LOGO_DIMENSION:
                return resized
            new_width *= LOGO_IMAGE_STEP_REDUCTION

    @staticmethod
    def create_context_with_image(resized: Image.Image, area_height: float) -> Image.Image:
        margin_top = (area_height - resized.height) / 2
        margin_left = resized.width * LOGO_IMAGE_MARGIN / 2
        context = Image.new('RGBA', (int(resized.width + margin_left * 2), int(area_height)), (0, 0, 0, 0))
        context.paste(resized, (int(margin_left), int(margin_top)), resized)
        return context


# ============================================================================
# Text
# ============================================================================

class TextGuesser:
    def find_text_max_points(
        self,
        image_width: float,
        area_width: float,
        area_height: float,
        number_of_digits: int,
    ) -> Tuple[float, float, float]:
        """
        Largest font size for a badge's text.

        Returns (points, text width, horizontal margin). The estimate starts
        from a width-per-point ratio measured for the badge font and shrinks
        until the widest text of that length fits the space beside the logo.
        """
        horizontal_margin = (area_width - image_width) * TEXT_MARGIN / 2
        available_width = area_width - image_width - horizontal_margin * 2
        points = self.estimate_points(available_width, number_of_digits)
        points, text_width = self.calculate_max_points(area_height, points, available_width, number_of_digits)
        return points, text_width, horizontal_margin

    @staticmethod
    def estimate_points(available_width: float, number_of_digits: int) -> float:
        ratio = TEXT_POINTS_RATIOS.get(number_of_digits, TEXT_POINTS_RATIO_DEFAULT)
        return available_width / ratio

    @staticmethod
    def calculate_max_points(area_height: float, points: float, available_width: float,
                             number_of_digits: int) -> Tuple[float, float]:
        sample = TEXT_SAMPLES.get(number_of_digits, TEXT_SAMPLE_DEFAULT)
        width_limit = int(available_width)
        points = max(points, MIN_FONT_POINTS)
        while True:
            width, height = measure_text(sample, points)
            if (width <= width_limit and height < area_height * TEXT_AREA_REDUCTION) or points <= MIN_FONT_POINTS:
                logger.debug(f"TEXT_FIT sample={sample} points={points:.2f} width={width:.1f}")
                return points, width
            points = max(points * TEXT_STEP_REDUCTION, MIN_FONT_POINTS)


class TextCreator:
    def create_context(self, area_width: float, area_height: float, horizontal_margin: float,
                       points: float, text: str) -> Image.Image:
        context, text_width = self.prepare_context(
            area_width + horizontal_margin * 2, area_height, horizontal_margin, points, text)
        if text_width < area_width:
            # Shrink the canvas to the text
            context, _ = self.prepare_context(
                text_width + horizontal_margin * 2, area_height, horizontal_margin, points, text)
        return context

    @staticmethod
    def prepare_context(context_width: float, context_height: float, horizontal_margin: float,
                        points: float, text: str) -> Tuple[Image.Image, float]:
        font = get_font(points)
        context = Image.new('RGBA', (max(1, int(context_width)), max(1, int(context_height))), (0, 0, 0, 0))
        draw = ImageDraw.Draw(context)

        text_width = font.getlength(text)
        _, top, _, bottom = font.getbbox(text)
        x = horizontal_margin
        y = (context.height - (top + bottom)) / 2

        draw.text((x + 1, y + 1), text, fill=TEXT_SHADOW_COLOR, font=font)
        draw.text((x, y), text, fill=TEXT_COLOR, font=font)
        return context, text_width


# ============================================================================
# Badges
# ============================================================================

class LogoCreator:
    def __init__(self, image_creator: Optional[LogoImageCreator] = None, text_guesser: Optional[TextGuesser] = None):
        self.image_creator = image_creator or LogoImageCreator()
        self.text_guesser = text_guesser or TextGuesser()

    def create_logo(self, image_path: str, text: str, dimensions: LogoDimensions) -> Logo:
        try:
            image = self.image_creator.create_context(dimensions.area_width, dimensions.area_height, image_path)
        except (OSError, ValueError) as e:
            raise PosterError('create_logo_image_context', e)

        try:
            points, width, margin = self.text_guesser.find_text_max_points(
                image.width, dimensions.area_width, dimensions.area_height, len(text))
        except (OSError, ValueError) as e:
            raise PosterError('create_logo_text', e)

        return Logo(
            image_path=image_path,
            image=image,
            text=TextSpec(value=text, points=points, width=width, horizontal_margin=margin),
        )


def _smallest_non_zero(values: List[float]) -> float:
    chosen = 0.0
    for value in values:
        if chosen == 0.0 or value < chosen:
            chosen = value
    return chosen


class LogoService:
    def __init__(self, text_creator: Optional[TextCreator] = None):
        self.text_creator = text_creator or TextCreator()

    def position_logos(self, logos: List[Logo], area_width: float, area_height: float) -> Image.Image:
        """
        Lay badges out across the band.

        Every badge is redrawn with the smallest font size and margin of the
        set, then badges are spaced with an equal gap before each one and
        after the last.
        """
        if not logos:
            raise PosterError('position_logos', ValueError('no logos to position'))

        font_size = _smallest_non_zero([logo.text.points for logo in logos])
        margin = _smallest_non_zero([logo.text.horizontal_margin for logo in logos])

        total_width = 0
        for logo in logos:
            logo.text.points = font_size
            logo.text.horizontal_margin = margin
            try:
                logo.text.image = self.text_creator.create_context(
                    area_width, area_height, margin, font_size, logo.text.value)
            except (OSError, ValueError) as e:
                raise PosterError('get_text_context', e)
            logo.sum_width = logo.image.width + logo.text.image.width
            total_width += logo.sum_width

        band = Image.new('RGBA', (int(area_width), int(area_height)), (0, 0, 0, 0))
        centering = (int(area_width) - total_width) // (len(logos) + 1)

        start = 0
        for logo in logos:
            slot = Image.new('RGBA', (max(1, logo.sum_width + centering), int(area_height)), (0, 0, 0, 0))
            slot.paste(logo.image, (centering, 0), logo.image)
            slot.paste(logo.text.image, (centering + logo.image.width, 0), logo.text.image)
            band.paste(slot, (start, 0), slot)
            start += slot.width

        logger.debug(f"LOGOS_POSITIONED count={len(logos)} font_size={font_size:.2f} centering={centering}")
        return band
