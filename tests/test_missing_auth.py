"""Unit tests for the missing_auth matcher (ECU-AUTH-001) and its dominance check."""

from ecuguard.context import SourceUnit, create_context
from ecuguard.index import UnitIndex
from ecuguard.rules.missing_auth import MissingAuthBranchMatcher, dominates
from ecuguard.rules.registry import DEFAULT_REGISTRY


def _index(source: str) -> UnitIndex:
    return UnitIndex(create_context(SourceUnit("test.c", source)))


def _run_rule(source: str) -> list:
    rule = next(r for r in DEFAULT_REGISTRY if r.id == "ECU-AUTH-001")
    matcher = MissingAuthBranchMatcher()
    return matcher.run(rule, matcher.compile(rule), _index(source))


OBD_REQUEST = """
void process_obd_request(uint8_t service_id, uint8_t* data) {
    switch (service_id) {
        case 0x01:
            send_current_data();
            break;
        case 0x04:
            clear_dtcs();
            break;
        case 0x2E:
            write_data_by_id(data);
            break;
    }
}
"""


def test_clear_dtcs_without_auth_is_flagged():
    """process_obd_request case 0x04 yields CWE-306 at clear_dtcs()."""
    findings = _run_rule(OBD_REQUEST)
    assert [f.message.split("'")[1] for f in findings] == ["clear_dtcs", "write_data_by_id"]
    assert all(f.cwe == "CWE-306" for f in findings)
    assert findings[0].location.line == 8


def test_auth_before_privileged_call_suppresses():
    source = """
void handle(void) {
    if (!is_session_unlocked()) {
        return;
    }
    clear_dtcs();
}
"""
    assert _run_rule(source) == []


def test_auth_guarding_the_branch_suppresses():
    source = "void handle(const char *k) { if (authenticate_diagnostic(k)) { ecu_reset(); } }"
    assert _run_rule(source) == []


def test_auth_in_sibling_case_does_not_count():
    source = """
void handle(int sid) {
    switch (sid) {
        case 0x27:
            security_access_unlock();
            break;
        case 0x04:
            clear_dtcs();
            break;
    }
}
"""
    findings = _run_rule(source)
    assert len(findings) == 1


def test_auth_in_closed_block_does_not_count():
    source = """
void handle(int x) {
    if (x) {
        verify_seed_key(x);
    }
    flash_write_block(x);
}
"""
    assert len(_run_rule(source)) == 1


def test_auth_after_privileged_call_does_not_count():
    assert len(_run_rule("void f(void) { control_engine_remotely(); authenticate(); }")) == 1


def test_auth_in_another_function_does_not_count():
    source = """
void guard(void) { authenticate(); }
void act(void) { write_firmware_to_ecu(image); }
"""
    findings = _run_rule(source)
    assert len(findings) == 1
    assert "'act'" in findings[0].message


def test_dominates_requires_same_function():
    index = _index("void a(void) { authenticate(); }\nvoid b(void) { clear_dtcs(); }")
    guard = index.calls_to("authenticate")[0]
    call = index.calls_to("clear_dtcs")[0]
    assert not dominates(guard, call)


def test_auth_in_braceless_branch_does_not_count():
    """The check only runs when x is set; the privileged call always runs."""
    assert len(_run_rule("void handler(int x) { if (x) authenticate_tester(); clear_dtcs(); }")) == 1


def test_auth_in_else_if_condition_does_not_count():
    source = """
void handler(int x) {
    if (x) {
        log_request();
    } else if (authenticate_tester()) {
        log_request();
    }
    clear_dtcs();
}
"""
    assert len(_run_rule(source)) == 1


def test_auth_in_loop_header_does_not_count():
    source = "void handler(int n) { while (n-- && verify_key(n)) { } ecu_reset(); }"
    assert len(_run_rule(source)) == 1


def test_braceless_guard_and_call_in_same_branch():
    source = "void handler(int x) { if (x) if (authenticate_tester()) clear_dtcs(); }"
    assert _run_rule(source) == []


def test_early_return_guard_without_braces_suppresses():
    source = "void handler(void) { if (!is_authenticated()) return; write_data_by_id(buf); }"
    assert _run_rule(source) == []
