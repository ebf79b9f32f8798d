"""
Built-in mixins.

Each mixin reads what the fetchers left in ``env.data`` (``meta``,
``links``, ``oembed``) and appends snippets to ``env.result`` or fills in
``env.result.meta``. Whitelist gates decide which sources are trusted for a
domain.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

import structlog
from selectolax.parser import HTMLParser

from embedcore.models import ExecutionContext, Snippet, StepDescriptor
from embedcore.utils.meta import find_meta, group_meta, omit_none, wl_check

logger = structlog.get_logger(__name__)

ICON_SIZES_RE = re.compile(r"^\d+x\d+$", re.IGNORECASE)


def _oembed(env: ExecutionContext) -> Optional[Dict[str, Any]]:
    oembed = env.data.get("oembed")
    return oembed if isinstance(oembed, dict) and oembed else None


def _first_iframe(html: Optional[str]):
    if not html:
        return None
    return HTMLParser(f"<div>{html}</div>").css_first("iframe")


async def meta_mixin(env: ExecutionContext) -> None:
    meta = env.data.get("meta")
    oembed = _oembed(env) or {}

    meta_title = find_meta(meta, "title")
    # WordPress.com fills the title meta tag with its own name.
    if meta_title and "wordpress.com" in meta_title.lower():
        meta_title = None

    env.result.meta.title = (
        oembed.get("title") or find_meta(meta, ["twitter:title", "og:title", "dc.title", "html-title"]) or meta_title or ""
    )
    env.result.meta.site = (
        oembed.get("site_name")
        or oembed.get("provider_name")
        or find_meta(meta, ["og:site_name", "twitter:site:value", "twitter:site", "application-name"])
        or ""
    )
    env.result.meta.description = (
        oembed.get("description") or find_meta(meta, ["twitter:description", "og:description", "description"]) or ""
    )


async def twitter_thumbnail_mixin(env: ExecutionContext) -> None:
    meta = env.data.get("meta")
    card = find_meta(meta, "twitter:card")

    if card == "photo" and not wl_check(env.whitelist, "twitter.photo"):
        logger.debug("twitter-thumbnail: skip", reason="photo card not whitelisted")
        return

    if card == "gallery":
        for i in range(4):
            href = find_meta(meta, [f"twitter:image{i}:src", f"twitter:image{i}"])
            if href:
                env.result.snippets.append(Snippet(type="image", href=href, tags=["thumbnail", "twitter"]))

    href = find_meta(meta, ["twitter:image:src", "twitter:image"])
    if href:
        env.result.snippets.append(
            Snippet(
                type="image",
                href=href,
                tags=["thumbnail", "twitter"],
                media=omit_none(
                    width=find_meta(meta, "twitter:image:width"),
                    height=find_meta(meta, "twitter:image:height"),
                ),
            )
        )


async def twitter_player_mixin(env: ExecutionContext) -> None:
    if not wl_check(env.whitelist, "twitter.player"):
        return

    meta = env.data.get("meta")
    href = find_meta(meta, ["twitter:player:url", "twitter:player:src", "twitter:player"])
    if not href:
        return

    snippet = Snippet(
        href=href,
        tags=["player", "twitter", "responsive"],
        media=omit_none(
            width=find_meta(meta, "twitter:player:width"),
            height=find_meta(meta, "twitter:player:height"),
        ),
    )
    if wl_check(env.whitelist, "twitter.player", "html5"):
        snippet.add_tag("html5")
        snippet.type = "text/html"
    if wl_check(env.whitelist, "twitter.player", "autoplay"):
        snippet.add_tag("autoplay")

    env.result.snippets.append(snippet)


async def og_player_mixin(env: ExecutionContext) -> None:
    if not wl_check(env.whitelist, "og.video"):
        return

    names = ["og:video:url", "og:video:src", "og:video"]
    for group in group_meta(env.data.get("meta"), "og:video", names):
        href = find_meta(group, names)
        if not href:
            continue

        snippet = Snippet(
            href=href,
            type=find_meta(group, "og:video:type"),
            tags=["player", "og", "responsive"],
            media=omit_none(
                width=find_meta(group, "og:video:width"),
                height=find_meta(group, "og:video:height"),
                duration=find_meta(group, "og:video:duration"),
            ),
        )
        if wl_check(env.whitelist, "og.video", "autoplay"):
            snippet.add_tag("autoplay")
        env.result.snippets.append(snippet)


async def og_thumbnail_mixin(env: ExecutionContext) -> None:
    names = ["og:image:url", "og:image:src", "og:image"]
    for group in group_meta(env.data.get("meta"), "og:image", names):
        href = find_meta(group, names)
        if not href:
            continue

        env.result.snippets.append(
            Snippet(
                type="image",
                href=href,
                tags=["thumbnail", "og"],
                media=omit_none(
                    width=find_meta(group, "og:image:width"),
                    height=find_meta(group, "og:image:height"),
                ),
            )
        )


async def oembed_player_mixin(env: ExecutionContext) -> None:
    oembed = _oembed(env)
    if not oembed or oembed.get("type") != "video" or not wl_check(env.whitelist, "oembed.video"):
        return

    iframe = _first_iframe(oembed.get("html5") or oembed.get("html"))
    href = iframe.attributes.get("src") if iframe is not None else None
    if not href:
        return

    snippet = Snippet(
        type="text/html",
        href=href,
        tags=["player", "oembed", "responsive", "html5"],
        media=omit_none(width=oembed.get("width"), height=oembed.get("height"), duration=oembed.get("duration")),
    )
    if wl_check(env.whitelist, "oembed.video", "autoplay"):
        snippet.add_tag("autoplay")
    env.result.snippets.append(snippet)


async def oembed_photo_mixin(env: ExecutionContext) -> None:
    oembed = _oembed(env)
    if (
        not oembed
        or oembed.get("type") != "photo"
        or not oembed.get("url")
        or not wl_check(env.whitelist, "oembed.photo")
    ):
        return

    env.result.snippets.append(
        Snippet(
            type="image",
            href=oembed["url"],
            tags=["image", "oembed"],
            media=omit_none(width=oembed.get("width"), height=oembed.get("height")),
        )
    )


async def oembed_icon_mixin(env: ExecutionContext) -> None:
    oembed = _oembed(env)
    if not oembed or not oembed.get("icon_url"):
        return

    env.result.snippets.append(
        Snippet(
            type="image",
            href=oembed["icon_url"],
            tags=["image", "oembed"],
            media=omit_none(width=oembed.get("icon_width"), height=oembed.get("icon_height")),
        )
    )


async def oembed_thumbnail_mixin(env: ExecutionContext) -> None:
    oembed = _oembed(env)
    if not oembed or not oembed.get("thumbnail_url"):
        return

    env.result.snippets.append(
        Snippet(
            type="image",
            href=oembed["thumbnail_url"],
            tags=["thumbnail", "oembed"],
            media=omit_none(width=oembed.get("thumbnail_width"), height=oembed.get("thumbnail_height")),
        )
    )


async def oembed_rich_mixin(env: ExecutionContext) -> None:
    oembed = _oembed(env)
    if not oembed or oembed.get("type") != "rich" or not wl_check(env.whitelist, "oembed.rich"):
        return

    snippet = Snippet(
        type="text/html",
        tags=["oembed", "rich"],
        html="",
        media=omit_none(width=oembed.get("width"), height=oembed.get("height")),
    )
    for flag in ("autoplay", "reader", "player", "html5"):
        if wl_check(env.whitelist, "oembed.rich", flag):
            snippet.add_tag(flag)

    html = oembed.get("html5") or oembed.get("html")
    iframe = _first_iframe(html)
    if iframe is not None and not wl_check(env.whitelist, "oembed.rich", "inline"):
        snippet.href = iframe.attributes.get("src")
        if not snippet.media.get("width") and iframe.attributes.get("width"):
            snippet.media["width"] = iframe.attributes["width"]
        if not snippet.media.get("height") and iframe.attributes.get("height"):
            snippet.media["height"] = iframe.attributes["height"]
    else:
        snippet.html = html

    env.result.snippets.append(snippet)


async def favicon_mixin(env: ExecutionContext) -> None:
    links = env.data.get("links")
    if not links:
        return

    for rel, records in links.items():
        if "icon" not in rel:
            continue
        for link in records:
            snippet = Snippet(type=link.get("type") or "image", href=link.get("href"), tags=["icon"])
            sizes = link.get("sizes") or ""
            if ICON_SIZES_RE.match(sizes):
                width, height = sizes.lower().split("x")
                snippet.media = {"width": int(width), "height": int(height)}
            env.result.snippets.append(snippet)


async def logo_mixin(env: ExecutionContext) -> None:
    logo = find_meta(env.data.get("meta"), "logo")
    if not logo:
        return

    env.result.snippets.append(Snippet(type="image", href=logo, tags=["icon"]))


MIXINS = [
    StepDescriptor(id="meta", handler=meta_mixin),
    StepDescriptor(id="twitter-thumbnail", handler=twitter_thumbnail_mixin),
    StepDescriptor(id="twitter-player", handler=twitter_player_mixin),
    StepDescriptor(id="og-player", handler=og_player_mixin),
    StepDescriptor(id="og-thumbnail", handler=og_thumbnail_mixin),
    StepDescriptor(id="oembed-player", handler=oembed_player_mixin),
    StepDescriptor(id="oembed-photo", handler=oembed_photo_mixin),
    StepDescriptor(id="oembed-icon", handler=oembed_icon_mixin),
    StepDescriptor(id="oembed-thumbnail", handler=oembed_thumbnail_mixin),
    StepDescriptor(id="oembed-rich", handler=oembed_rich_mixin),
    StepDescriptor(id="favicon", handler=favicon_mixin),
    StepDescriptor(id="logo", handler=logo_mixin),
]
