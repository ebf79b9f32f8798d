"""
Capabilities the engine consumes from the outside world.

Anything with the right shape works; nothing here needs to be inherited.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from .models import Handler, ImageDimensions, Response

__all__ = ["Cache", "Handler", "ImageProbe", "RenderFn", "RequestFn"]


@runtime_checkable
class Cache(Protocol):
    """Key/value store for resolved records and image dimensions."""

    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or ``None`` when the key is absent."""
        ...

    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``."""
        ...


class RequestFn(Protocol):
    """HTTP transport.

    Must raise an error carrying ``status_code`` (see
    :class:`embedcore.errors.TransportError`) when the request fails.
    """

    async def __call__(self, url: str, options: Optional[Mapping[str, Any]] = None) -> Response: ...


class ImageProbe(Protocol):
    """Returns the intrinsic size of the image at ``url``, or ``None`` if the data is not an image."""

    async def __call__(self, url: str) -> Optional[ImageDimensions]: ...


class RenderFn(Protocol):
    def __call__(self, data: Dict[str, Any]) -> str: ...
