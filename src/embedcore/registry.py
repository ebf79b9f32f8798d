"""
Plugin registry: three independent catalogs of pipeline steps.

Each catalog maps a step id to its :class:`StepDescriptor` in registration
order. Registering an id twice replaces the earlier step in place, which is
how built-in steps are shadowed.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Union

import structlog

from .models import StepDescriptor

logger = structlog.get_logger(__name__)

StepSpec = Union[StepDescriptor, Mapping[str, Any]]


def to_descriptor(spec: StepSpec, *, with_priority: bool) -> StepDescriptor:
    """Build a descriptor from a descriptor or a ``{"id", "handler", "priority"}`` mapping."""
    if isinstance(spec, StepDescriptor):
        descriptor = StepDescriptor(id=spec.id, handler=spec.handler, priority=spec.priority)
    else:
        handler = spec.get("handler") or spec.get("fn")
        if not callable(handler):
            raise TypeError(f"Step {spec.get('id')!r} has no callable handler")
        descriptor = StepDescriptor(id=spec["id"], handler=handler, priority=int(spec.get("priority") or 0))
    if not with_priority:
        descriptor.priority = 0
    return descriptor


class PluginRegistry:
    """Fetcher, mixin and mixin-after catalogs.

    ``on_change`` is invoked after every mutation; the engine uses it to drop
    its compiled rule table.
    """

    def __init__(self, on_change: Optional[Callable[[], None]] = None) -> None:
        self._fetchers: Dict[str, StepDescriptor] = {}
        self._mixins: Dict[str, StepDescriptor] = {}
        self._mixins_after: Dict[str, StepDescriptor] = {}
        self._on_change = on_change

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def add_fetcher(self, spec: StepSpec) -> StepDescriptor:
        descriptor = to_descriptor(spec, with_priority=True)
        self._fetchers[descriptor.id] = descriptor
        logger.debug("Fetcher registered", step=descriptor.id, priority=descriptor.priority)
        self._changed()
        return descriptor

    def add_mixin(self, spec: StepSpec) -> StepDescriptor:
        descriptor = to_descriptor(spec, with_priority=False)
        self._mixins[descriptor.id] = descriptor
        logger.debug("Mixin registered", step=descriptor.id)
        self._changed()
        return descriptor

    def add_mixin_after(self, spec: StepSpec) -> StepDescriptor:
        descriptor = to_descriptor(spec, with_priority=False)
        self._mixins_after[descriptor.id] = descriptor
        logger.debug("Mixin-after registered", step=descriptor.id)
        self._changed()
        return descriptor

    @property
    def fetchers(self) -> Mapping[str, StepDescriptor]:
        return self._fetchers

    @property
    def mixins(self) -> Mapping[str, StepDescriptor]:
        return self._mixins

    @property
    def mixins_after(self) -> Mapping[str, StepDescriptor]:
        return self._mixins_after

