"""
Domain rule table: one rule per provider, in registration order.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Union

import structlog

from .models import DomainRule

logger = structlog.get_logger(__name__)

RuleSpec = Union[str, DomainRule, Mapping[str, Any]]

# Legacy camelCase keys accepted in mapping specs.
_KEY_ALIASES = {"mixinsAfter": "mixins_after"}


class DomainRuleTable:
    """Registered domain rules.

    Args:
        enabled_providers: Global provider-enable policy; ``True`` enables
            every domain added by name, a list enables only the ids it contains.
        on_change: Called after every mutation.
    """

    def __init__(
        self,
        enabled_providers: Union[bool, List[str]] = True,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.enabled_providers = enabled_providers
        self._rules: Dict[str, DomainRule] = {}
        self._on_change = on_change

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def is_enabled_by_policy(self, domain_id: str) -> bool:
        if self.enabled_providers is True:
            return True
        if not self.enabled_providers:
            return False
        return domain_id in self.enabled_providers

    def add(self, spec: RuleSpec) -> DomainRule:
        """Add a rule, replacing any rule with the same id."""
        rule = self._build_rule(spec)
        self._rules[rule.id] = rule
        logger.debug("Domain registered", domain=rule.id, enabled=rule.enabled, patterns=len(rule.match))
        self._changed()
        return rule

    def _build_rule(self, spec: RuleSpec) -> DomainRule:
        if isinstance(spec, DomainRule):
            return spec
        if isinstance(spec, str):
            spec = {"id": spec}

        options = {_KEY_ALIASES.get(key, key): value for key, value in spec.items()}
        if "id" not in options:
            raise ValueError("Domain rule requires an 'id'")
        options.setdefault("enabled", self.is_enabled_by_policy(options["id"]))
        if options.get("match") is None:
            options.pop("match", None)
        return DomainRule(**options)

    def for_each(self, fn: Callable[[DomainRule], Any]) -> None:
        """Apply ``fn`` to every rule; the rules are assumed to have been mutated."""
        try:
            for rule in list(self._rules.values()):
                fn(rule)
        finally:
            self._changed()

    def get(self, domain_id: str) -> Optional[DomainRule]:
        return self._rules.get(domain_id)

    def __contains__(self, domain_id: object) -> bool:
        return domain_id in self._rules

    def __iter__(self) -> Iterator[DomainRule]:
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)
