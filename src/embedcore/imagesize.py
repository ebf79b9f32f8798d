"""
Image dimension probing.

:class:`ImageSizeProbe` downloads an image and reads its dimensions: Pillow
for raster formats, selectolax for SVG documents. :class:`ImageSizeLoader`
puts the whole-engine cache in front of a probe and collapses concurrent
lookups of the same URL into one.
"""

from __future__ import annotations

import io
import re
import time
from typing import Any, Awaitable, Callable, Optional, Tuple

import structlog
from PIL import Image, UnidentifiedImageError
from selectolax.parser import HTMLParser

from .models import ImageDimensions, Response
from .observability.metrics import increment
from .protocols import Cache, ImageProbe
from .utils.unique import UniqueAsync

logger = structlog.get_logger(__name__)

CACHE_PREFIX = "image#"
DEFAULT_TTL_SECONDS = 24 * 60 * 60

_SVG_LENGTH = re.compile(r"^\s*([0-9]*\.?[0-9]+(?:e[-+]?[0-9]+)?)\s*([a-z%]*)\s*$", re.IGNORECASE)
_SVG_SNIFF = re.compile(rb"^\s*(?:<\?xml[^>]*>\s*)?(?:<!--.*?-->\s*)*(?:<!doctype[^>]*>\s*)?<svg", re.IGNORECASE | re.DOTALL)


def _parse_length(value: Optional[str]) -> Optional[Tuple[float, str]]:
    if not value:
        return None
    match = _SVG_LENGTH.match(value)
    if not match:
        return None
    return float(match.group(1)), (match.group(2).lower() or "px")


def svg_dimensions(content: bytes) -> Optional[ImageDimensions]:
    """Dimensions of an SVG document from its width/height or viewBox."""
    root = HTMLParser(content.decode("utf-8", errors="replace")).css_first("svg")
    if root is None:
        return None

    attrs = {key.lower(): value for key, value in root.attributes.items()}
    width = _parse_length(attrs.get("width"))
    height = _parse_length(attrs.get("height"))

    view_box = None
    parts = re.split(r"[\s,]+", (attrs.get("viewbox") or "").strip())
    if len(parts) == 4:
        try:
            view_box = (float(parts[2]), float(parts[3]))
        except ValueError:
            view_box = None

    if width and height:
        return ImageDimensions(width[0], height[0], w_units=width[1], h_units=height[1], type="svg")

    if view_box and view_box[0] > 0 and view_box[1] > 0:
        ratio = view_box[0] / view_box[1]
        if width and width[1] != "%":
            return ImageDimensions(width[0], width[0] / ratio, w_units=width[1], h_units=width[1], type="svg")
        if height and height[1] != "%":
            return ImageDimensions(height[0] * ratio, height[0], w_units=height[1], h_units=height[1], type="svg")
        return ImageDimensions(view_box[0], view_box[1], type="svg")

    return None


def raster_dimensions(content: bytes) -> Optional[ImageDimensions]:
    """Dimensions of a raster image; only the header is decoded."""
    try:
        with Image.open(io.BytesIO(content)) as image:
            width, height = image.size
            image_format = (image.format or "").lower() or None
    except (UnidentifiedImageError, OSError, ValueError):
        return None
    return ImageDimensions(width, height, type=image_format)


RequestCallable = Callable[..., Awaitable[Response]]


class ImageSizeProbe:
    """Default :class:`~embedcore.protocols.ImageProbe`.

    Returns ``None`` when the payload is not an image it can read. Transport
    errors from ``request`` propagate.
    """

    def __init__(self, request: RequestCallable) -> None:
        self._request = request

    async def __call__(self, url: str) -> Optional[ImageDimensions]:
        response = await self._request(url)
        content = response.content or response.body.encode("utf-8")
        content_type = response.header("content-type").split(";")[0].strip().lower()

        if content_type == "image/svg+xml" or _SVG_SNIFF.match(content[:1024]):
            dimensions = svg_dimensions(content)
        else:
            dimensions = raster_dimensions(content)

        if dimensions is None:
            logger.debug("Unrecognized image data", url=url, content_type=content_type)
        return dimensions


class ImageSizeLoader:
    """Cached, de-duplicated image dimension lookups.

    Entries are stored under ``"image#<url>"`` as ``{"dimensions": ..., "ts":
    <ms>}`` and trusted for ``ttl_seconds``. Concurrent lookups of one URL
    share a single cache read and probe.
    """

    def __init__(self, cache: Cache, probe: ImageProbe, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        self.cache = cache
        self.probe = probe
        self.ttl_seconds = ttl_seconds
        self._unique: UniqueAsync[Optional[ImageDimensions]] = UniqueAsync(self._load)

    async def __call__(self, url: str) -> Optional[ImageDimensions]:
        return await self._unique(url)

    async def _load(self, url: str) -> Optional[ImageDimensions]:
        key = CACHE_PREFIX + url
        now_ms = time.time() * 1000

        cached: Any = await self.cache.get(key)
        if isinstance(cached, dict) and cached.get("ts", 0) > now_ms - self.ttl_seconds * 1000:
            increment("image_probe_total", labels={"source": "cache"})
            return ImageDimensions(**cached["dimensions"])

        dimensions = await self.probe(url)
        increment("image_probe_total", labels={"source": "network"})
        if dimensions is None:
            return None

        await self.cache.set(key, {"dimensions": dimensions.to_dict(), "ts": int(time.time() * 1000)})
        return dimensions
