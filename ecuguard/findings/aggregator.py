# Finding aggregation: collapse duplicates reported for the same evidence,
# assign stable ids and put findings in report order.

from __future__ import annotations

import hashlib
from typing import Iterable

from ecuguard.findings.models import Finding


def finding_id(key: tuple[str, str, int]) -> str:
    """Stable 12-hex-digit id derived from the dedup key."""
    rule_id, path, offset = key
    return hashlib.sha1(f"{rule_id}\0{path}\0{offset}".encode("utf-8")).hexdigest()[:12]


def _preference(finding: Finding) -> tuple:
    # Longer taint path wins, then the lexicographically smaller message.
    steps = tuple((step.path, step.offset, step.description) for step in finding.taint_path)
    return (-len(finding.taint_path), finding.message, steps)


def aggregate(findings: Iterable[Finding]) -> list[Finding]:
    """
    Deduplicate findings by (rule id, unit path, offset) and sort them by
    unit path, offset and rule id.

    The result does not depend on input order, and aggregating an
    already aggregated list returns it unchanged.
    """
    best: dict[tuple[str, str, int], Finding] = {}
    for finding in findings:
        key = finding.key
        current = best.get(key)
        if current is None or _preference(finding) < _preference(current):
            best[key] = finding
    result = [
        finding if finding.id == finding_id(key) else finding.model_copy(update={"id": finding_id(key)})
        for key, finding in best.items()
    ]
    result.sort(key=lambda f: (f.location.path, f.location.offset, f.rule_id))
    return result
