"""
Built-in mixins-after: normalization passes over the accumulated snippets.
"""

from __future__ import annotations

import asyncio
import math
import posixpath
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

import structlog

from embedcore.errors import FetchError, TransportError
from embedcore.models import ExecutionContext, Snippet, StepDescriptor

logger = structlog.get_logger(__name__)

EXTENSION_TYPES = {
    ".mp4": "video/mp4",
    ".ogg": "video/ogg",
    ".webm": "video/webm",
}

DEFAULT_IMAGE_EXTENSIONS = [".bmp", ".gif", ".jpg", ".jpeg", ".png", ".psd", ".tif", ".tiff", ".webp", ".svg"]

NUMERIC_FIELDS = ("width", "height", "duration")

_LEADING_NUMBER = re.compile(r"^\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


def _extension(href: Optional[str]) -> str:
    if not href:
        return ""
    return posixpath.splitext(urlparse(href).path)[1].lower()


async def resolve_href_after_mixin(env: ExecutionContext) -> None:
    """Make relative and protocol-relative hrefs absolute against the source URL."""
    for snippet in env.result.snippets:
        if snippet.href:
            snippet.href = urljoin(env.src, snippet.href)


async def mime_detect_after_mixin(env: ExecutionContext) -> None:
    """Fill missing snippet types from the extension, else from a HEAD request.

    Snippets whose type still cannot be determined are dropped.
    """
    kept: List[Snippet] = []

    for snippet in env.result.snippets:
        if not snippet.type:
            snippet.type = EXTENSION_TYPES.get(_extension(snippet.href))

        if not snippet.type and snippet.href:
            logger.debug("mime-detect: request", href=snippet.href)
            try:
                response = await env.engine.request(snippet.href, {"method": "HEAD"})
            except TransportError as e:
                if e.status_code is not None:
                    raise FetchError(
                        f"Mime-detect mixin after handler: Bad response code: {e.status_code}", e.status_code
                    ) from e
                raise

            if response.status_code != 200:
                raise FetchError(
                    f"Mime-detect mixin after handler: Bad response code: {response.status_code}",
                    response.status_code,
                )
            snippet.type = response.header("content-type").split(";")[0].strip() or None
            if snippet.type == "text/html":
                snippet.add_tag("html5")

        if not snippet.type:
            logger.debug("mime-detect: dropping snippet", href=snippet.href)
            continue

        kept.append(snippet)

    env.result.snippets = kept


async def ssl_force_after_mixin(env: ExecutionContext) -> None:
    for snippet in env.result.snippets:
        if snippet.href and urlparse(snippet.href).scheme == "https":
            snippet.add_tag("ssl")


async def merge_after_mixin(env: ExecutionContext) -> None:
    """Collapse snippets sharing an href: tags are unioned, media merged."""
    merged: Dict[Optional[str], Snippet] = {}

    for snippet in env.result.snippets:
        existing = merged.get(snippet.href)
        if existing is None:
            merged[snippet.href] = snippet
            continue
        for tag in snippet.tags:
            existing.add_tag(tag)
        existing.media.update({key: value for key, value in snippet.media.items() if value is not None})

    env.result.snippets = list(merged.values())


async def image_size_after_mixin(env: ExecutionContext) -> None:
    """Fill in missing image dimensions, probing each distinct href once."""
    config = getattr(env.engine, "config", None)
    extensions = config.image_size.extensions if config is not None else DEFAULT_IMAGE_EXTENSIONS

    pending: Dict[str, List[Snippet]] = {}
    for snippet in env.result.snippets:
        if snippet.type != "image" or not snippet.href:
            continue
        if snippet.media.get("width") and snippet.media.get("height"):
            continue
        if _extension(snippet.href) not in extensions:
            continue
        pending.setdefault(snippet.href, []).append(snippet)

    if not pending:
        return

    hrefs = list(pending)
    logger.debug("image-size: load", count=len(hrefs))
    results = await asyncio.gather(*(env.engine.load_image_size(href) for href in hrefs))

    for href, dimensions in zip(hrefs, results):
        if dimensions is None or dimensions.w_units != "px" or dimensions.h_units != "px":
            continue
        for snippet in pending[href]:
            snippet.media["width"] = dimensions.width
            snippet.media["height"] = dimensions.height


async def set_autoplay_after_mixin(env: ExecutionContext) -> None:
    for snippet in env.result.snippets:
        if snippet.type == "text/html" and snippet.has_tag("player", "autoplay"):
            snippet.media["autoplay"] = "autoplay=1"


def to_number(value: Any) -> Optional[float]:
    """Leading numeric prefix of ``value``; ``None`` when there is none."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    match = _LEADING_NUMBER.match(str(value))
    if not match:
        return None
    return float(match.group(0))


async def convert_str_int_after_mixin(env: ExecutionContext) -> None:
    """Turn width/height/duration into numbers; drop bad values and unpaired sizes."""
    for snippet in env.result.snippets:
        media = snippet.media
        for field in NUMERIC_FIELDS:
            if not media.get(field):
                continue
            number = to_number(media[field])
            if number is None or not math.isfinite(number) or number < 0:
                del media[field]
                continue
            media[field] = int(number) if float(number).is_integer() else number

        if not media.get("width") or not media.get("height"):
            media.pop("width", None)
            media.pop("height", None)


MIXINS_AFTER = [
    StepDescriptor(id="resolve-href", handler=resolve_href_after_mixin),
    StepDescriptor(id="mime-detect", handler=mime_detect_after_mixin),
    StepDescriptor(id="ssl-force", handler=ssl_force_after_mixin),
    StepDescriptor(id="merge", handler=merge_after_mixin),
    StepDescriptor(id="image-size", handler=image_size_after_mixin),
    StepDescriptor(id="set-autoplay", handler=set_autoplay_after_mixin),
    StepDescriptor(id="convert-str-int", handler=convert_str_int_after_mixin),
]
