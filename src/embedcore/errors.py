"""
Error taxonomy for embedcore.

Input that cannot be handled (malformed URL, unknown or disabled provider) is
not an error: ``resolve()`` returns ``None`` for it. Everything below aborts
the current resolution.
"""

from __future__ import annotations

from typing import Optional


class EmbedError(Exception):
    """Base class for errors raised by embedcore itself."""

    code: str = "EEMBED"

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code!r}, status_code={self.status_code!r})"


class TransportError(EmbedError):
    """Network-level failure raised by the request capability.

    ``status_code`` is set when the server answered with a non-2xx status and
    is ``None`` when no response was received at all.
    """

    code = "ETRANSPORT"

    def __init__(self, message: str, status_code: Optional[int] = None, url: str = "") -> None:
        super().__init__(message, status_code=status_code)
        self.url = url


class FetchError(EmbedError):
    """A pipeline step got a bad HTTP response code."""

    code = "EHTTP"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message, status_code=status_code)


class ContentError(EmbedError):
    """Fetched payload could not be parsed."""

    code = "ECONTENT"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message, code=code)


class MimeError(ContentError):
    """Fetched payload has a content-type no step knows how to read."""

    code = "EMIME"


class RuleError(EmbedError):
    """A domain rule references a step id that is not registered."""

    code = "ERULE"
