"""
Built-in fetchers.

- ``meta`` downloads the page and collects ``<head>`` meta tags and links.
- ``oembed`` follows the page's oEmbed discovery link.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Tuple

import structlog
from bs4 import BeautifulSoup
from selectolax.parser import HTMLParser

from embedcore.errors import ContentError, FetchError, MimeError, TransportError
from embedcore.models import ExecutionContext, Response, StepDescriptor

logger = structlog.get_logger(__name__)

OEMBED_TYPE_RE = re.compile(r"^(application|text)/(xml|json)\+oembed$", re.IGNORECASE)


async def fetch(env: ExecutionContext, url: str, label: str) -> Response:
    """GET ``url`` through the engine, mapping HTTP failures to :class:`FetchError`."""
    try:
        response = await env.engine.request(url)
    except TransportError as e:
        if e.status_code is not None:
            raise FetchError(f"{label}: Bad response code: {e.status_code}", e.status_code) from e
        raise

    if response.status_code != 200:
        raise FetchError(f"{label}: Bad response code: {response.status_code}", response.status_code)
    return response


def parse_head(html: str) -> Tuple[List[Dict[str, Any]], Dict[str, List[Dict[str, str]]]]:
    """Meta records and link attribute maps (grouped by rel) from a page head."""
    tree = HTMLParser(html or "")
    meta: List[Dict[str, Any]] = []
    links: Dict[str, List[Dict[str, str]]] = {}

    for node in tree.css("head meta"):
        attrs = node.attributes
        name = attrs.get("property") or attrs.get("name")
        value = attrs.get("content") or attrs.get("value") or attrs.get("src")
        if not name or not value:
            continue
        meta.append({"name": name, "value": value})

    for node in tree.css("head title"):
        meta.append({"name": "html-title", "value": node.text()})

    for node in tree.css("head link"):
        attrs = {key: value or "" for key, value in node.attributes.items()}
        rel = attrs.get("rel") or attrs.get("name") or ""
        links.setdefault(rel, []).append(attrs)

    return meta, links


async def meta_fetcher(env: ExecutionContext) -> None:
    logger.debug("meta: request", url=env.src)
    response = await fetch(env, env.src, "Meta fetcher")

    env.data["meta"], env.data["links"] = parse_head(response.body)
    logger.debug("meta: done", records=len(env.data["meta"]), link_rels=len(env.data["links"]))


def parse_oembed_xml(body: str) -> Dict[str, str]:
    """Child elements of the ``<oembed>`` root as a flat mapping."""
    soup = BeautifulSoup(body or "", "html.parser")
    root = soup.find("oembed")
    if root is None:
        return {}
    return {child.name: child.get_text() for child in root.find_all(recursive=False)}


async def oembed_fetcher(env: ExecutionContext) -> None:
    links = env.data.get("links") or {}
    # Some sites (flickr.com) use rel="alternative".
    alternate = list(links.get("alternate", [])) + list(links.get("alternative", []))

    endpoints = [link.get("href") for link in alternate if OEMBED_TYPE_RE.match(link.get("type", ""))]
    endpoints = [href for href in endpoints if href]
    if not endpoints:
        return

    logger.debug("oembed: request", endpoint=endpoints[0])
    response = await fetch(env, endpoints[0], "Oembed fetcher")
    content_type = response.header("content-type")

    if content_type.startswith("application/json"):
        try:
            env.data["oembed"] = json.loads(response.body)
        except ValueError as e:
            raise ContentError("Oembed fetcher: Can't parse oembed JSON response") from e
        return

    if content_type.startswith("text/xml") or content_type.startswith("application/xml"):
        env.data["oembed"] = parse_oembed_xml(response.body)
        return

    raise MimeError(f"Oembed fetcher: Unknown oembed response content-type: {content_type}")


FETCHERS = [
    StepDescriptor(id="meta", handler=meta_fetcher, priority=-100),
    StepDescriptor(id="oembed", handler=oembed_fetcher),
]
