"""
Rule compiler.

Turns the plugin registry and the domain rule table into an immutable
:class:`CompiledTable`: the match patterns and three concrete step lists
per enabled domain. Patterns are kept as compiled, never joined.
"""

from __future__ import annotations

from typing import List, Mapping, Sequence

import structlog

from .errors import RuleError
from .models import (
    ById,
    CompiledDomainEntry,
    CompiledTable,
    DomainRule,
    Inline,
    InlineWithPriority,
    StepDescriptor,
    StepRef,
    Wildcard,
)
from .registry import PluginRegistry
from .rules import DomainRuleTable

logger = structlog.get_logger(__name__)

def expand_steps(
    refs: Sequence[StepRef],
    catalog: Mapping[str, StepDescriptor],
    *,
    domain_id: str,
    kind: str,
) -> List[StepDescriptor]:
    """Resolve refs against ``catalog`` and drop repeated handlers, keeping the first."""
    expanded: List[StepDescriptor] = []

    for ref in refs:
        if isinstance(ref, Wildcard):
            expanded.extend(catalog.values())
        elif isinstance(ref, ById):
            descriptor = catalog.get(ref.id)
            if descriptor is None:
                raise RuleError(f"Domain '{domain_id}' references unknown {kind} '{ref.id}'")
            expanded.append(descriptor)
        elif isinstance(ref, Inline):
            expanded.append(StepDescriptor(id=getattr(ref.handler, "__name__", ""), handler=ref.handler))
        elif isinstance(ref, InlineWithPriority):
            expanded.append(
                StepDescriptor(id=getattr(ref.handler, "__name__", ""), handler=ref.handler, priority=ref.priority)
            )
        elif isinstance(ref, StepDescriptor):
            expanded.append(ref)
        else:
            raise RuleError(f"Domain '{domain_id}' has an unsupported {kind} reference: {ref!r}")

    seen = set()
    unique: List[StepDescriptor] = []
    for descriptor in expanded:
        key = id(descriptor.handler)
        if key in seen:
            continue
        seen.add(key)
        unique.append(descriptor)
    return unique


def compile_domain(rule: DomainRule, registry: PluginRegistry) -> CompiledDomainEntry:
    fetchers = expand_steps(rule.fetchers, registry.fetchers, domain_id=rule.id, kind="fetcher")
    # sorted() is stable: equal priorities keep expansion order.
    fetchers = sorted(fetchers, key=lambda descriptor: descriptor.priority)

    return CompiledDomainEntry(
        patterns=tuple(rule.match),
        fetchers=tuple(fetchers),
        mixins=tuple(expand_steps(rule.mixins, registry.mixins, domain_id=rule.id, kind="mixin")),
        mixins_after=tuple(
            expand_steps(rule.mixins_after, registry.mixins_after, domain_id=rule.id, kind="mixin-after")
        ),
    )


def compile_table(registry: PluginRegistry, rules: DomainRuleTable) -> CompiledTable:
    """Build the compiled table for every enabled domain."""
    domains = {rule.id: compile_domain(rule, registry) for rule in rules if rule.enabled}
    table = CompiledTable(domains=domains)
    logger.debug("Rule table compiled", domains=len(domains), total_rules=len(rules))
    return table
