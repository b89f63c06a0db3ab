from __future__ import annotations

"""
Scan configuration: which rule definitions are enabled and how many workers
the scan uses.

Rules are data (RuleDefinition records from the registry), so enabling,
disabling or re-prioritising them never touches matcher code.
"""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Sequence

from ecuguard.findings.models import Severity
from ecuguard.rules.registry import DEFAULT_REGISTRY, RuleDefinition

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """
    Scan configuration.

    rules: rule definitions to evaluate (the default registry unless given).
    workers: thread pool size for the parse and evaluate phases.
    disabled_rules: rule ids to skip.
    min_severity: rules below this severity are skipped.
    """

    rules: Sequence[RuleDefinition] = field(default_factory=lambda: DEFAULT_REGISTRY)
    workers: int = 1
    disabled_rules: FrozenSet[str] = frozenset()
    min_severity: Optional[Severity] = None

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        self.disabled_rules = frozenset(self.disabled_rules)


def get_default_config() -> Config:
    """Return the default configuration: every rule of the default registry, one worker."""
    return Config()


def get_enabled_rules(config: Config | None = None) -> Sequence[RuleDefinition]:
    """
    Return the enabled rules from the given config (or default config).

    Disabled ids and rules below min_severity are filtered out; the registry
    order is preserved.
    """
    if config is None:
        config = get_default_config()
    rules = []
    for rule in config.rules:
        if rule.id in config.disabled_rules:
            logger.debug("Rule %s disabled by configuration", rule.id)
            continue
        if config.min_severity is not None and rule.severity.rank < config.min_severity.rank:
            continue
        rules.append(rule)
    return rules
