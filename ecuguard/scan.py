from __future__ import annotations

"""
Scan orchestration: the entry point of the analysis pipeline.

scan() runs three phases over a batch of source units:
- parse: tokenize and parse every unit (in parallel, one task per unit)
- index: merge the per-unit indexes into one SymbolIndex (the only barrier)
- evaluate: run every enabled rule on every unit (in parallel), then
  aggregate the raw findings into the ordered report

A unit that fails in any phase is dropped with a diagnostic; the other
units are still analyzed. The report does not depend on the worker count.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, List, Optional

from ecuguard.config import Config, get_default_config, get_enabled_rules
from ecuguard.context import SourceUnit, UnitContext, create_context
from ecuguard.engine import RuleEngine
from ecuguard.findings.aggregator import aggregate
from ecuguard.findings.models import Diagnostic, DiagnosticKind, Finding
from ecuguard.index import SymbolIndex, UnitIndex
from ecuguard.report import ScanReport

logger = logging.getLogger(__name__)


def _unit_failure(path: str, phase: str, exc: Exception) -> Diagnostic:
    return Diagnostic(
        kind=DiagnosticKind.UNIT,
        message=f"{phase} failed: {type(exc).__name__}: {exc}",
        path=path,
    )


def _parse_all(units: List[SourceUnit], workers: int) -> tuple[list[UnitContext], list[Diagnostic]]:
    """Parse every unit; contexts come back in input order whatever the completion order."""
    parsed: dict[int, UnitContext] = {}
    diagnostics: list[Diagnostic] = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_map = {executor.submit(create_context, unit): (n, unit) for n, unit in enumerate(units)}
        for future in as_completed(future_map):
            n, unit = future_map[future]
            try:
                parsed[n] = future.result()
            except Exception as exc:
                logger.exception("Failed to parse %s: %s", unit.path, exc)
                diagnostics.append(_unit_failure(unit.path, "parse", exc))
    return [parsed[n] for n in sorted(parsed)], diagnostics


def _evaluate_all(
    engine: RuleEngine, units: List[UnitIndex], workers: int
) -> tuple[list[Finding], list[Diagnostic]]:
    findings: list[Finding] = []
    diagnostics: list[Diagnostic] = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_map = {executor.submit(engine.evaluate, unit): unit for unit in units}
        for future in as_completed(future_map):
            unit = future_map[future]
            try:
                unit_findings, unit_diagnostics = future.result()
            except Exception as exc:
                logger.exception("Failed to evaluate %s: %s", unit.path, exc)
                diagnostics.append(_unit_failure(unit.path, "evaluation", exc))
                continue
            findings.extend(unit_findings)
            diagnostics.extend(unit_diagnostics)
    return findings, diagnostics


def scan(units: Iterable[SourceUnit], config: Optional[Config] = None) -> ScanReport:
    """
    Analyze a batch of source units with the enabled rules.

    Returns a ScanReport with outcome "empty_input" when no units are given.
    Never raises for malformed C: problems become diagnostics on the report.
    """
    if config is None:
        config = get_default_config()
    unit_list = list(units)
    if not unit_list:
        logger.info("No source units to scan")
        return ScanReport.empty()

    logger.info("Scanning %d unit(s) with %d worker(s)", len(unit_list), config.workers)
    engine = RuleEngine(get_enabled_rules(config))

    contexts, diagnostics = _parse_all(unit_list, config.workers)

    symbols = SymbolIndex.build(contexts)
    for unit in symbols.units:
        diagnostics.extend(unit.context.model.diagnostics)
    logger.debug(
        "Indexed %d function(s) and %d call site(s)", symbols.function_count, symbols.call_count
    )

    raw_findings, rule_diagnostics = _evaluate_all(engine, symbols.units, config.workers)
    diagnostics.extend(engine.diagnostics)
    diagnostics.extend(rule_diagnostics)

    findings = aggregate(raw_findings)
    report = ScanReport(
        findings=tuple(findings),
        diagnostics=tuple(sorted(diagnostics, key=lambda d: d.sort_key)),
        units_scanned=len(symbols.units),
        functions_indexed=symbols.function_count,
        call_sites_indexed=symbols.call_count,
    )
    logger.info(
        "Scan finished: %d finding(s), %d diagnostic(s) across %d unit(s)",
        len(report.findings),
        len(report.diagnostics),
        report.units_scanned,
    )
    return report
