"""
embedcore - resolve content URLs into embeddable snippets and render them.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .cache import MemoryCache, NullCache
from .config import Config
from .engine import EmbedEngine
from .errors import ContentError, EmbedError, FetchError, MimeError, RuleError, TransportError
from .models import DomainRule, ExecutionContext, RenderResult, ResultRecord, Snippet, StepDescriptor

__all__ = [
    "__version__",
    "Config",
    "ContentError",
    "DomainRule",
    "EmbedEngine",
    "EmbedError",
    "ExecutionContext",
    "FetchError",
    "MemoryCache",
    "MimeError",
    "NullCache",
    "RenderResult",
    "ResultRecord",
    "RuleError",
    "Snippet",
    "StepDescriptor",
    "TransportError",
]
