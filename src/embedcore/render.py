"""
Render dispatcher: picks the first template that can render a record.
"""

from __future__ import annotations

import urllib.parse
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import structlog

from .models import RenderResult, ResultRecord
from .observability.metrics import increment
from .protocols import RenderFn

logger = structlog.get_logger(__name__)

FormatSpec = Union[str, Sequence[str], None]


def expand_aliases(formats: FormatSpec, aliases: Mapping[str, Sequence[str]]) -> List[Tuple[str, Optional[str]]]:
    """Expand alias tokens in place into ``(format, alias)`` candidates.

    >>> expand_aliases(["block", "inline"], {"block": ["player", "rich"]})
    [('player', 'block'), ('rich', 'block'), ('inline', None)]
    """
    if formats is None:
        formats = []
    elif isinstance(formats, str):
        formats = [formats]

    candidates: List[Tuple[str, Optional[str]]] = []
    for token in formats:
        if token in aliases:
            candidates.extend((name, token) for name in aliases[token])
        else:
            candidates.append((token, None))
    return candidates


class RenderDispatcher:
    """Template lookup and candidate iteration.

    ``templates`` maps ``"<domain>_<format>"`` and ``"default_<format>"`` keys
    to render callables; per-domain keys win.
    """

    def __init__(
        self,
        templates: Dict[str, RenderFn],
        aliases: Dict[str, List[str]],
        desired_thumbnail_width: Optional[int] = None,
    ) -> None:
        self.templates = templates
        self.aliases = aliases
        self.desired_thumbnail_width = desired_thumbnail_width

    def find_template(self, domain: str, fmt: str) -> Optional[RenderFn]:
        return self.templates.get(f"{domain}_{fmt}") or self.templates.get(f"default_{fmt}")

    def template_data(self, record: ResultRecord) -> Dict[str, Any]:
        data = record.model_dump()
        data["utils"] = {"url": urllib.parse}
        if self.desired_thumbnail_width:
            data["desired_thumbnail_width"] = self.desired_thumbnail_width
        return data

    def render(self, record: ResultRecord, formats: FormatSpec) -> Optional[RenderResult]:
        data = self.template_data(record)

        for fmt, alias in expand_aliases(formats, self.aliases):
            template = self.find_template(record.domain, fmt)
            if template is None:
                continue
            try:
                html = template(data)
            except Exception as e:
                # Not enough data for this format; try the next one.
                logger.debug("Template failed", domain=record.domain, format=fmt, error=str(e))
                continue

            result = RenderResult(html=html.strip(), type=alias or fmt)
            increment("render_total", labels={"type": result.type})
            return result

        logger.debug("No template rendered", domain=record.domain, formats=formats)
        return None
