"""
YouTube: oEmbed endpoint only, no page fetch.
"""

from __future__ import annotations

import json
import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from embedcore.errors import ContentError
from embedcore.models import ExecutionContext
from embedcore.plugins.fetchers import fetch

OEMBED_ENDPOINT = "https://www.youtube.com/oembed"

_ASTRAL_ESCAPE = re.compile(r"(\\+)(U[0-9a-fA-F]{8})")


def oembed_source_url(src: str) -> str:
    """The URL to hand to the oEmbed endpoint.

    ``m.youtube.com/#/watch?v=ID`` becomes ``m.youtube.com/watch?v=ID`` and any
    ``list`` parameter is dropped, since YouTube answers with a playlist
    player that has no video index.
    """
    parts = urlsplit(src)
    if parts.path == "/" and parts.fragment:
        parts = urlsplit(src.replace("/#/", "/", 1))

    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != "list"]
    return urlunsplit(parts._replace(query=urlencode(query)))


def repair_astral_escapes(body: str) -> str:
    r"""Replace ``\UXXXXXXXX`` escapes, which JSON does not allow, with the character."""

    def replace(match: "re.Match[str]") -> str:
        slashes, escape = match.group(1), match.group(2)
        # An even run of backslashes means the "U" itself is escaped.
        if len(slashes) % 2 == 0:
            return match.group(0)
        return slashes[1:] + chr(int(escape[1:], 16))

    return _ASTRAL_ESCAPE.sub(replace, body)


async def youtube_fetcher(env: ExecutionContext) -> None:
    endpoint = f"{OEMBED_ENDPOINT}?{urlencode({'format': 'json', 'url': oembed_source_url(env.src)})}"
    response = await fetch(env, endpoint, "YouTube fetcher")

    try:
        env.data["oembed"] = json.loads(repair_astral_escapes(response.body))
    except ValueError as e:
        raise ContentError("YouTube fetcher: Can't parse oembed JSON response") from e


RULE = {
    "id": "youtube.com",
    "match": [
        r"^https?://(?:www\.)?youtube\.com/?watch\?(?:[^&]*&)*v=([a-zA-Z0-9_-]+)",
        r"^https?://www\.youtube\.com/embed/([a-zA-Z0-9_-]+)",
        r"^https?://www\.youtube\.com/v/([a-zA-Z0-9_-]+)",
        r"^https?://www\.youtube\.com/user/[a-zA-Z0-9_-]+\?v=([a-zA-Z0-9_-]+)",
        r"^https?://youtu\.be/([a-zA-Z0-9_-]+)",
        r"^https?://m\.youtube\.com/?watch\?(?:[^&]*&)*v=([a-zA-Z0-9_-]+)",
        r"^https?://m\.youtube\.com/#/watch\?(?:[^&]*&)*v=([a-zA-Z0-9_-]+)",
        r"^https?://www\.youtube-nocookie\.com/v/([a-zA-Z0-9_-]+)",
    ],
    "fetchers": [youtube_fetcher],
    "mixins": ["meta", "oembed-player", "oembed-thumbnail"],
}
