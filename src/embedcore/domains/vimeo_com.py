"""
Vimeo: oEmbed endpoint only.

Fetching the HTML page for many videos gets the client temporarily banned
with 429 responses, so only the oEmbed JSON is requested. Favicons and
flash player URLs are lost; the templates do not need them.
"""

from __future__ import annotations

import json
import re
from urllib.parse import urlencode

from embedcore.errors import ContentError
from embedcore.models import ExecutionContext
from embedcore.plugins.fetchers import fetch

OEMBED_ENDPOINT = "https://vimeo.com/api/oembed.json"
DESIRED_THUMBNAIL_WIDTH = 480

THUMBNAIL_RE = re.compile(r"^(.*?/video/\d+_)\d+(\.jpg|\.webp)$")


async def vimeo_fetcher(env: ExecutionContext) -> None:
    response = await fetch(env, f"{OEMBED_ENDPOINT}?{urlencode({'url': env.src})}", "Vimeo fetcher")

    try:
        env.data["oembed"] = json.loads(response.body)
    except ValueError as e:
        raise ContentError("Vimeo fetcher: Can't parse oembed JSON response") from e


async def resized_thumbnail(env: ExecutionContext) -> None:
    """Add a copy of the thumbnail scaled to the width players prefer."""
    thumbnail = next(
        (
            snippet
            for snippet in env.result.snippets
            if snippet.type == "image" and snippet.has_tag("thumbnail") and THUMBNAIL_RE.match(snippet.href or "")
        ),
        None,
    )
    if thumbnail is None:
        return

    config = getattr(env.engine, "config", None)
    desired_width = config.render.desired_thumbnail_width if config is not None else DESIRED_THUMBNAIL_WIDTH

    resized = thumbnail.model_copy(deep=True)
    resized.href = THUMBNAIL_RE.sub(rf"\g<1>{desired_width}\g<2>", thumbnail.href)
    width, height = resized.media.get("width"), resized.media.get("height")
    if width and height:
        resized.media["height"] = height / width * desired_width
    resized.media["width"] = desired_width

    env.result.snippets.append(resized)


RULE = {
    "id": "vimeo.com",
    "match": [
        r"^https?://(?:www\.)?vimeo\.com/.",
        r"^https?://player\.vimeo\.com/\d+",
        r"^https?://player\.vimeo\.com/video/\d+",
    ],
    "fetchers": [vimeo_fetcher],
    "mixins_after": ["*", resized_thumbnail],
}
