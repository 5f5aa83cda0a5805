"""
Watermark compositor.

Scales the brand logo to a fixed share of the source width, lays it over the
bottom right corner at reduced opacity and re-encodes as JPEG. Rendering only
reads from the asset store, so any number of renders may run at once.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from io import BytesIO

from django.conf import settings
from PIL import Image, UnidentifiedImageError
from rest_framework.exceptions import NotFound

from .exceptions import RenderError
from .storage import resolve_asset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Placement:
    width: int
    height: int
    left: int
    top: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def watermark_geometry(
    image_width: int,
    image_height: int,
    logo_width: int,
    logo_height: int,
    scale: float = 0.2,
    margin: int = 10,
) -> Placement:
    """Size and offset of the logo for an `image_width` x `image_height` source.

    The vertical offset is derived from the scaled logo *width*, not its
    height, so a logo that is not square does not sit flush with the bottom
    margin. Existing previews rely on this placement.
    """
    target = _round_half_up(image_width * scale)
    width = max(target, 1)
    height = max(_round_half_up(logo_height * width / logo_width), 1)
    return Placement(
        width=width,
        height=height,
        left=image_width - target - margin,
        top=image_height - target - margin,
    )


def _load_logo(path: str) -> Image.Image:
    try:
        with Image.open(path) as logo:
            return logo.convert('RGBA')
    except (OSError, UnidentifiedImageError) as e:
        logger.error("Watermark logo unavailable at %s: %s", path, e)
        raise RenderError()


def _fade(logo: Image.Image, opacity: float) -> Image.Image:
    alpha = logo.getchannel('A').point(lambda a: _round_half_up(a * opacity))
    logo.putalpha(alpha)
    return logo


def composite(source: Image.Image, logo: Image.Image, quality: int | None = None) -> bytes:
    """Overlay `logo` onto `source` and return JPEG bytes."""
    scale = settings.WATERMARK_SCALE
    margin = settings.WATERMARK_MARGIN
    quality = quality or settings.WATERMARK_JPEG_QUALITY

    placement = watermark_geometry(source.width, source.height, logo.width, logo.height, scale, margin)
    mark = logo.resize((placement.width, placement.height), Image.LANCZOS)
    mark = _fade(mark, settings.WATERMARK_OPACITY)

    # paste() clips at the canvas edges, so out of frame parts are dropped
    layer = Image.new('RGBA', source.size, (0, 0, 0, 0))
    layer.paste(mark, (placement.left, placement.top))
    merged = Image.alpha_composite(source.convert('RGBA'), layer)

    buffer = BytesIO()
    merged.convert('RGB').save(buffer, format='JPEG', quality=quality)
    return buffer.getvalue()


def render_watermarked(filename: str) -> bytes:
    """
    Watermarked JPEG rendition of a stored upload.

    Raises NotFound when `filename` is not a stored asset (including one that
    disappears mid-render) and RenderError when decoding or encoding fails.
    """
    path = resolve_asset(filename)
    logo = _load_logo(settings.WATERMARK_LOGO_PATH)
    try:
        with Image.open(path) as source:
            source.load()
            return composite(source, logo)
    except FileNotFoundError:
        raise NotFound('Image not found')
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        logger.error("Watermarking %s failed: %s", filename, e)
        raise RenderError()
