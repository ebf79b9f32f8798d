"""
Helpers shared by the built-in mixins.

``meta`` records are what the ``meta`` fetcher collects: a list of
``{"name": ..., "value": ...}`` dicts in document order.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

MetaRecord = Dict[str, Any]


def find_meta(meta: Optional[Sequence[MetaRecord]], names: Union[str, Iterable[str]]) -> Optional[Any]:
    """Value of the first record matching ``names``, tried in priority order."""
    if not meta:
        return None
    if isinstance(names, str):
        names = [names]

    for name in names:
        for record in meta:
            if record.get("name") == name:
                return record.get("value")
    return None


def group_meta(
    meta: Optional[Sequence[MetaRecord]],
    namespace: str,
    group_by: Sequence[str],
) -> List[List[MetaRecord]]:
    """Split the records of a namespace into one group per described object.

    A new group starts whenever one of the ``group_by`` names repeats, so
    ``og:image`` followed by its ``og:image:width`` and another ``og:image``
    yields two groups.
    """
    if not meta:
        return []

    records = [record for record in meta if str(record.get("name", "")).lower().startswith(namespace)]
    if not records:
        return []

    groups: List[List[MetaRecord]] = []
    current: List[MetaRecord] = []
    for record in records:
        name = record.get("name")
        if name in group_by and any(item.get("name") == name for item in current):
            groups.append(current)
            current = []
        current.append(record)
    groups.append(current)
    return groups


def wl_check(whitelist: Optional[Mapping[str, Any]], record: str, value: str = "allow") -> bool:
    """True if the whitelist leaf at dotted path ``record`` is ``value`` or a list holding it."""
    node: Any = whitelist
    for part in record.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return False
        node = node[part]

    if isinstance(node, (list, tuple)):
        return value in node
    return node == value


def omit_none(**fields: Any) -> Dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}
