"""Unit tests for the dangerous_call matcher (ECU-BOF-001, ECU-CMD-001)."""

from ecuguard.context import SourceUnit, create_context
from ecuguard.index import UnitIndex
from ecuguard.rules.registry import DEFAULT_REGISTRY
from ecuguard.rules.unsafe_functions import DangerousCallMatcher


def _run_rule(source: str, rule_id: str = "ECU-BOF-001", path: str = "test.c") -> list:
    """Parse source, build the unit index, run one default rule, return findings."""
    rule = next(r for r in DEFAULT_REGISTRY if r.id == rule_id)
    matcher = DangerousCallMatcher()
    index = UnitIndex(create_context(SourceUnit(path, source)))
    return matcher.run(rule, matcher.compile(rule), index)


def test_no_unsafe_functions():
    """Code with no unsafe functions yields no findings."""
    source = """
int main(void) {
    char buf[64];
    fgets(buf, sizeof(buf), stdin);
    return 0;
}
"""
    assert _run_rule(source) == []


def test_gets_detected():
    """gets() is reported with CWE-120 and a snippet of the call."""
    findings = _run_rule("int main(void) { char b[64]; gets(b); return 0; }")
    assert len(findings) == 1
    f = findings[0]
    assert f.rule_id == "ECU-BOF-001"
    assert f.cwe == "CWE-120"
    assert "gets" in f.message
    assert f.location.snippet == "gets(b)"
    assert f.remediation


def test_strcpy_detected():
    """strcpy() from a variable is reported."""
    findings = _run_rule("int main(void) { char a[8], b[8]; strcpy(a, b); return 0; }")
    assert len(findings) == 1
    assert "strcpy" in findings[0].message


def test_multiple_unsafe_calls():
    source = """
void f(char *in) {
    char buf[10];
    strcat(buf, in);
    sprintf(buf, "%s", in);
}
"""
    findings = _run_rule(source)
    assert sorted(f.message.split("'")[1] for f in findings) == ["sprintf", "strcat"]


def test_strcpy_literal_that_fits_is_exempt():
    findings = _run_rule('void f(void) { char mode[8]; strcpy(mode, "debug"); }')
    assert findings == []


def test_strcpy_literal_too_long_is_flagged():
    findings = _run_rule('void f(void) { char mode[4]; strcpy(mode, "debug"); }')
    assert len(findings) == 1


def test_unknown_capacity_is_never_exempt():
    """A pointer destination has no known capacity, so the call stays flagged."""
    source = """
void use_after_free_example() {
    char* ptr = malloc(100);
    strcpy(ptr, "vulnerable");
}
"""
    assert len(_run_rule(source)) == 1


def test_array_parameter_is_never_exempt():
    """`char buf[8]` as a parameter is a pointer; the caller decides its size."""
    findings = _run_rule('void f(char buf[8]) { strcpy(buf, "1234567"); }')
    assert len(findings) == 1


def test_global_buffer_capacity_is_used():
    source = 'char vin[18];\nvoid f(void) { strcpy(vin, "WVWZZZ1JZXW000001"); }'
    assert _run_rule(source) == []


def test_scanf_with_width_is_exempt():
    source = 'void f(void) { char name[16]; scanf("%15s", name); sscanf(line, "%d %7s", &n, tag); }'
    assert _run_rule(source) == []


def test_scanf_without_width_is_flagged():
    source = 'void f(char *command) { char phone[32]; sscanf(command, "call %s", phone); }'
    findings = _run_rule(source)
    assert len(findings) == 1
    assert "sscanf" in findings[0].message


def test_scanf_with_variable_format_is_flagged():
    assert len(_run_rule("void f(const char *fmt) { scanf(fmt, buf); }")) == 1


def test_system_detected_as_command_execution():
    source = """
void execute_diagnostic_command(char* command) {
    system(command);
    popen(command, "r");
}
"""
    findings = _run_rule(source, "ECU-CMD-001")
    assert len(findings) == 2
    assert all(f.cwe == "CWE-78" for f in findings)
    assert findings[0].location.line == 3


def test_function_name_in_identifier_is_not_a_call():
    """Identifiers that merely mention gets (e.g. gets_count) are not flagged."""
    assert _run_rule("void f(void) { int gets_count = 0; widgets(1); }") == []
