"""
Built-in templates.

A template is a plain callable ``fn(data) -> str``. ``data`` is the resolved
record as a dict (``src``, ``domain``, ``meta``, ``snippets``) plus
``utils = {"url": urllib.parse}``. A template raises when the record lacks
what it needs; the dispatcher then tries the next candidate format.
"""

from __future__ import annotations

from html import escape
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .protocols import RenderFn

DESIRED_THUMBNAIL_WIDTH = 480
DEFAULT_ASPECT_PERCENT = 56.25


class MissingData(ValueError):
    """The record does not hold what a template needs."""


def domain_class(domain: str) -> str:
    return "ez-domain-" + (domain or "").replace(".", "_")


def _tags(snippet: Dict[str, Any]) -> List[str]:
    return snippet.get("tags") or []


def _media(snippet: Dict[str, Any]) -> Dict[str, Any]:
    return snippet.get("media") or {}


def _number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def set_query_param(href: str, assignment: str) -> str:
    """Add or replace one ``name=value`` pair in the query of ``href``."""
    name, _, value = assignment.partition("=")
    parts = urlsplit(href)
    query = [(key, val) for key, val in parse_qsl(parts.query, keep_blank_values=True) if key != name]
    query.append((name, value))
    return urlunsplit(parts._replace(query=urlencode(query)))


def format_duration(seconds: float) -> str:
    """``h:mm:ss``-style label; hours are omitted below one hour."""
    total = int(seconds) if float(seconds).is_integer() else seconds
    secs = total % 60
    parts = [int(total // 3600), int(total // 60) % 60, f"0{secs}" if secs < 10 else str(secs)]
    if parts[0] == 0:
        parts.pop(0)
    return ":".join(str(part) for part in parts)


def pick_thumbnail(snippets: List[Dict[str, Any]], desired_width: int = DESIRED_THUMBNAIL_WIDTH) -> Dict[str, Any]:
    thumbnails = [snippet for snippet in snippets if "thumbnail" in _tags(snippet)]
    if not thumbnails:
        raise MissingData("no thumbnail snippet")
    return min(thumbnails, key=lambda snippet: abs((_number(_media(snippet).get("width")) or 0) - desired_width))


def default_inline(data: Dict[str, Any]) -> str:
    title = (data.get("meta") or {}).get("title") or data["src"]
    return (
        f'<a class="{domain_class(data.get("domain", ""))} ez-inline" target="_blank" '
        f'href="{escape(data["src"])}" rel="nofollow">{escape(title)}</a>'
    )


def default_player(data: Dict[str, Any]) -> str:
    snippets = data.get("snippets") or []
    player = next(
        (snippet for snippet in snippets if "player" in _tags(snippet) and "html5" in _tags(snippet)),
        None,
    )
    if player is None or not player.get("href"):
        raise MissingData("no html5 player snippet")

    thumbnail = pick_thumbnail(snippets, data.get("desired_thumbnail_width") or DESIRED_THUMBNAIL_WIDTH)
    media = _media(player)

    href = player["href"]
    if media.get("autoplay"):
        href = set_query_param(href, str(media["autoplay"]))

    width, height = _number(media.get("width")), _number(media.get("height"))
    aspect = round(100 / width * height, 4) if width and height else DEFAULT_ASPECT_PERCENT

    placeholder = f'<iframe class="ez-player-frame" src="{escape(href)}" allowfullscreen></iframe>'
    title = (data.get("meta") or {}).get("title")
    duration = _number(media.get("duration"))

    lines = [
        f'<div class="ez-player {domain_class(data.get("domain", ""))} ez-block" data-placeholder="{escape(placeholder)}">',
        f'  <div class="ez-player-container" style="padding-bottom: {aspect:g}%;">',
        f'    <a class="ez-player-placeholder" target="_blank" href="{escape(data["src"])}" rel="nofollow">',
        f"      <div class=\"ez-player-picture\" style=\"background-image: url('{escape(thumbnail['href'])}');\"></div>",
    ]
    if title:
        lines += [
            '      <div class="ez-player-header">',
            f'        <div class="ez-player-title">{escape(title)}</div>',
            "      </div>",
        ]
    lines += [
        '      <div class="ez-player-button"></div>',
        '      <div class="ez-player-logo"></div>',
    ]
    if duration and duration > 0:
        lines.append(f'      <div class="ez-player-duration">{format_duration(duration)}</div>')
    lines += [
        "    </a>",
        "  </div>",
        "</div>",
    ]
    return "\n".join(lines)


def default_rich(data: Dict[str, Any]) -> str:
    rich = next((snippet for snippet in data.get("snippets") or [] if "rich" in _tags(snippet)), None)
    if rich is None:
        raise MissingData("no rich snippet")

    css = f'ez-rich {domain_class(data.get("domain", ""))} ez-block'
    if rich.get("html"):
        return f'<div class="{css}">{rich["html"]}</div>'

    if not rich.get("href"):
        raise MissingData("rich snippet has neither html nor href")

    media = _media(rich)
    size = "".join(
        f' {name}="{escape(str(media[name]))}"' for name in ("width", "height") if media.get(name) is not None
    )
    return f'<div class="{css}"><iframe class="ez-rich-frame" src="{escape(rich["href"])}"{size} allowfullscreen></iframe></div>'


TEMPLATES: Dict[str, RenderFn] = {
    "default_inline": default_inline,
    "default_player": default_player,
    "default_rich": default_rich,
}
