"""
Data models for embedcore.

Configuration-time objects (step descriptors, domain rules) are plain
dataclasses. The compiled rule table is frozen and rebuilt wholesale. The
resolution result is a pydantic model so it can be dumped into and restored
from an external cache.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

# A pipeline step: ``async def handler(env: ExecutionContext) -> None``.
# Plain functions are accepted too; their return value is awaited only if it
# is awaitable.
Handler = Callable[["ExecutionContext"], Any]

WILDCARD_ID = "*"


# ============================================================================
# Registry entries
# ============================================================================


@dataclass
class StepDescriptor:
    """A registered fetcher, mixin or mixin-after."""

    id: str
    handler: Handler
    priority: int = 0

    @property
    def name(self) -> str:
        return self.id or getattr(self.handler, "__name__", "anonymous")


# ============================================================================
# Step references used by domain rules
# ============================================================================


@dataclass(frozen=True)
class Wildcard:
    """Expands to every step currently in the registry."""


WILDCARD = Wildcard()


@dataclass(frozen=True)
class ById:
    id: str


@dataclass(frozen=True)
class Inline:
    handler: Handler


@dataclass(frozen=True)
class InlineWithPriority:
    handler: Handler
    priority: int = 0


StepRef = Union[Wildcard, ById, Inline, InlineWithPriority, StepDescriptor]


def to_step_ref(value: Any) -> StepRef:
    """Normalize a user supplied step reference.

    Accepts ``"*"``, a registry id, a callable, a ``{"handler", "priority"}``
    mapping, a :class:`StepDescriptor` or an already built ref.
    """
    if isinstance(value, (Wildcard, ById, Inline, InlineWithPriority, StepDescriptor)):
        return value
    if isinstance(value, str):
        return WILDCARD if value == WILDCARD_ID else ById(value)
    if isinstance(value, Mapping):
        handler = value.get("handler") or value.get("fn")
        if not callable(handler):
            raise TypeError(f"Step mapping without a callable handler: {value!r}")
        return InlineWithPriority(handler=handler, priority=int(value.get("priority", 0)))
    if callable(value):
        return Inline(value)
    raise TypeError(f"Unsupported step reference: {value!r}")


# ============================================================================
# Domain rules
# ============================================================================


def default_match(domain_id: str) -> Pattern[str]:
    """``http(s)://[www.]<domain>`` prefix match, case-insensitive."""
    return re.compile(rf"^https?://(?:www\.)?{re.escape(domain_id)}", re.IGNORECASE)


def to_pattern(value: Union[str, Pattern[str]]) -> Pattern[str]:
    if isinstance(value, str):
        return re.compile(value, re.IGNORECASE)
    return value


@dataclass
class DomainRule:
    """How to recognize and process URLs of one content provider."""

    id: str
    match: List[Pattern[str]] = field(default_factory=list)
    fetchers: List[StepRef] = field(default_factory=lambda: [WILDCARD])
    mixins: List[StepRef] = field(default_factory=lambda: [WILDCARD])
    mixins_after: List[StepRef] = field(default_factory=lambda: [WILDCARD])
    enabled: bool = True
    config: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.match, (list, tuple)):
            self.match = [self.match]
        self.match = [to_pattern(p) for p in self.match] or [default_match(self.id)]
        self.fetchers = [to_step_ref(ref) for ref in self.fetchers]
        self.mixins = [to_step_ref(ref) for ref in self.mixins]
        self.mixins_after = [to_step_ref(ref) for ref in self.mixins_after]


# ============================================================================
# Compiled rule table
# ============================================================================


@dataclass(frozen=True)
class CompiledDomainEntry:
    patterns: Tuple[Pattern[str], ...]
    fetchers: Tuple[StepDescriptor, ...]
    mixins: Tuple[StepDescriptor, ...]
    mixins_after: Tuple[StepDescriptor, ...]

    def matches(self, url: str) -> bool:
        # Patterns are tried one by one; each keeps its own groups and flags.
        return any(pattern.search(url) for pattern in self.patterns)


@dataclass(frozen=True)
class CompiledTable:
    domains: Mapping[str, CompiledDomainEntry]

    def __post_init__(self) -> None:
        object.__setattr__(self, "domains", MappingProxyType(dict(self.domains)))

    def find_domain(self, url: str) -> Optional[str]:
        """Return the first domain with a pattern matching ``url``."""
        for domain_id, entry in self.domains.items():
            if entry.matches(url):
                return domain_id
        return None


# ============================================================================
# Resolution result
# ============================================================================


class Meta(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str = ""
    site: str = ""
    description: str = ""


class Snippet(BaseModel):
    """One embeddable asset found for a URL."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    href: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    media: Dict[str, Any] = Field(default_factory=dict)
    html: Optional[str] = None

    def has_tag(self, *tags: str) -> bool:
        return all(tag in self.tags for tag in tags)

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)


class ResultRecord(BaseModel):
    """Normalized metadata for a resolved URL."""

    model_config = ConfigDict(extra="allow")

    src: str = ""
    domain: str = ""
    meta: Meta = Field(default_factory=Meta)
    snippets: List[Snippet] = Field(default_factory=list)


# ============================================================================
# Per-request context
# ============================================================================


@dataclass
class ExecutionContext:
    """Mutable state shared by every step of a single ``resolve()`` call.

    ``data`` holds what fetchers collected (``meta``, ``links``, ``oembed``);
    ``result`` is what mixins shape and what gets cached.
    """

    src: str
    result: ResultRecord
    engine: Any
    whitelist: Optional[Dict[str, Any]] = None
    config: Dict[str, Any] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Capability payloads
# ============================================================================


@dataclass
class Response:
    """What the request capability hands back."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    content: bytes = b""
    url: str = ""

    def header(self, name: str, default: str = "") -> str:
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return default


@dataclass(frozen=True)
class ImageDimensions:
    width: float
    height: float
    w_units: str = "px"
    h_units: str = "px"
    type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "w_units": self.w_units,
            "h_units": self.h_units,
            "type": self.type,
        }


@dataclass(frozen=True)
class RenderResult:
    html: str
    type: str
