"""Utility modules for embedcore."""

from .meta import find_meta, group_meta, omit_none, wl_check
from .unique import UniqueAsync

__all__ = ["UniqueAsync", "find_meta", "group_meta", "omit_none", "wl_check"]
