# Source-to-sink detection: externally controlled data (message payloads,
# unvalidated parameters, input calls) reaching a dangerous call argument.

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ecuguard.findings.models import Finding
from ecuguard.index import UnitIndex
from ecuguard.rules.base import ARG_SPEC_PATTERN, Matcher, MatcherParams, make_finding
from ecuguard.rules.registry import MatcherKind, RuleDefinition
from ecuguard.taint import TaintTracker


class PropagatorSpec(BaseModel):
    """dest/src argument specs of a copy-class call ("0", "1+", or "ret")."""

    dest: str = Field(..., pattern=ARG_SPEC_PATTERN)
    src: str = Field(..., pattern=ARG_SPEC_PATTERN)

    model_config = {"frozen": True, "extra": "forbid"}


class TaintFlowParams(MatcherParams):
    sinks: dict[str, str] = Field(..., min_length=1)
    propagators: dict[str, PropagatorSpec] = Field(default_factory=dict)
    sources: dict[str, str] = Field(default_factory=dict)
    sanitizers: list[str] = Field(default_factory=list)
    parameter_sources: bool = True

    @field_validator("sinks", "sources")
    @classmethod
    def _arg_specs(cls, specs: dict[str, str]) -> dict[str, str]:
        for callee, spec in specs.items():
            if not re.match(ARG_SPEC_PATTERN, spec):
                raise ValueError(f"invalid argument spec {spec!r} for {callee!r}")
        return specs

    @field_validator("sinks")
    @classmethod
    def _sinks_take_arguments(cls, specs: dict[str, str]) -> dict[str, str]:
        for callee, spec in specs.items():
            if spec == "ret":
                raise ValueError(f"sink {callee!r} must name an argument, not 'ret'")
        return specs


class TaintFlowMatcher(Matcher):
    kind = MatcherKind.TAINT_FLOW
    params_model = TaintFlowParams

    def run(self, rule: RuleDefinition, params: Any, index: UnitIndex) -> list[Finding]:
        findings: list[Finding] = []
        for fn in index.functions:
            for hit in TaintTracker(index, fn, params).run():
                name = index.tokens[hit.token_index].text
                findings.append(
                    make_finding(
                        rule,
                        index,
                        hit.call.token,
                        f"Externally controlled '{name}' reaches argument {hit.argument} "
                        f"of '{hit.call.callee}' in '{fn.name}' without validation.",
                        span=hit.call.span,
                        taint_path=hit.steps,
                    )
                )
        return findings
