# Rule registry: immutable RuleDefinition records and the default rule table.
# Every rule is data interpreted by one of the closed matcher kinds; adding
# coverage means adding a table entry, not new control flow.

from __future__ import annotations

import logging
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, Field, ValidationError, field_serializer, field_validator

from ecuguard.findings.models import Severity

logger = logging.getLogger(__name__)


class MatcherKind(str, Enum):
    LITERAL_PATTERN = "literal_pattern"
    DANGEROUS_CALL = "dangerous_call"
    FORMAT_STRING = "format_string"
    WEAK_CRYPTO = "weak_crypto"
    STATIC_IV = "static_iv"
    MISSING_AUTH = "missing_auth"
    TAINT_FLOW = "taint_flow"
    USE_AFTER_FREE = "use_after_free"
    ARITHMETIC_SIZE = "arithmetic_size"


def freeze(value: Any) -> Any:
    """Deep read-only copy: mappings become MappingProxyType, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Plain dict/list copy of a frozen value, for validation and dumping."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


class RuleDefinition(BaseModel):
    """
    One detection rule: matcher kind plus its parameters, CWE and severity.

    Rules are shared read-only between workers, so parameters are stored as
    a deep read-only copy; item assignment at any depth raises TypeError.
    """

    id: str = Field(..., min_length=1)
    title: str
    description: str = ""
    cwe: str = Field(..., pattern=r"^CWE-\d+$")
    severity: Severity
    kind: MatcherKind
    parameters: Mapping[str, Any] = Field(default_factory=dict)
    remediation: str = ""

    model_config = {"frozen": True}

    @field_validator("parameters")
    @classmethod
    def _freeze_parameters(cls, parameters: Mapping[str, Any]) -> Mapping[str, Any]:
        return freeze(parameters)

    @field_serializer("parameters")
    def _dump_parameters(self, parameters: Mapping[str, Any]) -> dict[str, Any]:
        return thaw(parameters)


class RegistryError(ValueError):
    """The rule table itself is unusable (bad entry shape or duplicate ids)."""


def load_registry(entries: Iterable[Mapping[str, Any]]) -> tuple[RuleDefinition, ...]:
    """
    Validate a table of rule entries into an immutable tuple of RuleDefinition.

    Matcher parameters are not checked here; the engine validates them per
    matcher kind and skips a malformed rule with a configuration diagnostic.
    """
    rules: list[RuleDefinition] = []
    seen: set[str] = set()
    for n, entry in enumerate(entries):
        try:
            rule = RuleDefinition.model_validate(dict(entry))
        except ValidationError as exc:
            raise RegistryError(f"rule entry #{n} is invalid: {exc}") from exc
        if rule.id in seen:
            raise RegistryError(f"duplicate rule id {rule.id!r}")
        seen.add(rule.id)
        rules.append(rule)
    logger.debug("Loaded %d rule definition(s)", len(rules))
    return tuple(rules)


# --- default rule table ----------------------------------------------------

# Copy-class calls: destination argument(s) receive data from source argument(s).
COPY_PROPAGATORS: dict[str, dict[str, str]] = {
    "memcpy": {"dest": "0", "src": "1"},
    "memmove": {"dest": "0", "src": "1"},
    "strcpy": {"dest": "0", "src": "1"},
    "strncpy": {"dest": "0", "src": "1"},
    "strcat": {"dest": "0", "src": "1"},
    "strncat": {"dest": "0", "src": "1"},
    "sprintf": {"dest": "0", "src": "1+"},
    "vsprintf": {"dest": "0", "src": "1+"},
    "snprintf": {"dest": "0", "src": "2+"},
    "vsnprintf": {"dest": "0", "src": "2+"},
    "sscanf": {"dest": "2+", "src": "0"},
    "strdup": {"dest": "ret", "src": "0"},
}

# Calls that bring externally controlled data into the function.
INPUT_SOURCES: dict[str, str] = {
    "gets": "0",
    "fgets": "0",
    "read": "1",
    "recv": "1",
    "recvfrom": "1",
    "scanf": "1+",
    "fscanf": "2+",
    "getenv": "ret",
    "can_receive": "0",
    "CAN_Receive": "1",
}

SANITIZERS = [
    "validate_*",
    "sanitize_*",
    "*_validate",
    "check_bounds*",
    "verify_length*",
]

_TAINT_COMMON: dict[str, Any] = {
    "propagators": COPY_PROPAGATORS,
    "sources": INPUT_SOURCES,
    "sanitizers": SANITIZERS,
    "parameter_sources": True,
}

DEFAULT_RULE_TABLE: list[dict[str, Any]] = [
    {
        "id": "ECU-SEC-001",
        "title": "Hardcoded credential or key",
        "description": "Password, key or token literal embedded in firmware source.",
        "cwe": "CWE-798",
        "severity": "critical",
        "kind": "literal_pattern",
        "parameters": {
            "hints": ["credential", "key"],
            "weak_values": ["admin", "root", "password", "0000", "1234", "123456", "default", "guest"],
            "value_patterns": [r"-----BEGIN [A-Z ]*PRIVATE KEY-----", r"\bAKIA[0-9A-Z]{16}\b"],
            "min_length": 1,
        },
        "remediation": "Provision secrets at manufacturing time into secure storage (HSM/SHE) instead of source.",
    },
    {
        "id": "ECU-BOF-001",
        "title": "Unbounded buffer operation",
        "description": "Call to a copy/format/input function that does not bound its destination.",
        "cwe": "CWE-120",
        "severity": "high",
        "kind": "dangerous_call",
        "parameters": {
            "functions": ["gets", "strcpy", "strcat", "sprintf", "vsprintf", "scanf", "sscanf", "fscanf", "getwd"],
            "bounded_format": {"scanf": 0, "sscanf": 1, "fscanf": 1},
            "literal_fit": ["strcpy"],
        },
        "remediation": "Use bounded variants: fgets, strncpy/strlcpy, snprintf, width-limited scanf conversions.",
    },
    {
        "id": "ECU-CMD-001",
        "title": "Shell command execution",
        "description": "Call that hands a command line to the system shell or replaces the process image.",
        "cwe": "CWE-78",
        "severity": "critical",
        "kind": "dangerous_call",
        "parameters": {
            "functions": ["system", "popen", "execl", "execlp", "execle", "execv", "execvp", "execve", "ShellExecute"],
        },
        "remediation": "Dispatch diagnostic commands through a fixed table of handlers instead of the shell.",
    },
    {
        "id": "ECU-FMT-001",
        "title": "Non-constant format string",
        "description": "printf-family call whose format argument is not a string literal.",
        "cwe": "CWE-134",
        "severity": "high",
        "kind": "format_string",
        "parameters": {
            "functions": {
                "printf": 0,
                "vprintf": 0,
                "sprintf": 1,
                "vsprintf": 1,
                "snprintf": 2,
                "vsnprintf": 2,
                "fprintf": 1,
                "vfprintf": 1,
                "dprintf": 1,
                "syslog": 1,
            },
            "flag_percent_n": True,
        },
        "remediation": 'Always pass a literal format: printf("%s", buffer).',
    },
    {
        "id": "ECU-CRY-001",
        "title": "Broken cryptographic primitive",
        "description": "Use of MD4/MD5/SHA-1, single DES or RC4.",
        "cwe": "CWE-327",
        "severity": "high",
        "kind": "weak_crypto",
        "parameters": {
            "functions": ["MD4*", "MD5", "MD5_*", "SHA1", "SHA1_*", "DES_*", "RC4", "RC4_*", "EVP_md5", "EVP_sha1", "EVP_des_*", "EVP_rc4*"],
        },
        "remediation": "Use SHA-256 or stronger for integrity and AES-GCM/CMAC (SecOC) for authenticity.",
    },
    {
        "id": "ECU-RNG-001",
        "title": "Predictable random number generator",
        "description": "Non-cryptographic PRNG used where unpredictability may matter (seeds, session ids).",
        "cwe": "CWE-338",
        "severity": "medium",
        "kind": "weak_crypto",
        "parameters": {
            "functions": ["rand", "srand", "random", "srandom", "drand48", "lrand48", "mrand48"],
        },
        "remediation": "Use the HSM TRNG or a DRBG (e.g. RAND_bytes, mbedtls_ctr_drbg_random).",
    },
    {
        "id": "ECU-IV-001",
        "title": "Static or zero initialization vector",
        "description": "Encryption call whose IV is a literal or a constant/all-zero array.",
        "cwe": "CWE-329",
        "severity": "high",
        "kind": "static_iv",
        "parameters": {
            "functions": {
                "AES_cbc_encrypt": 4,
                "AES_cfb128_encrypt": 4,
                "AES_ofb128_encrypt": 4,
                "DES_ncbc_encrypt": 4,
                "EVP_EncryptInit_ex": 4,
                "EVP_CipherInit_ex": 4,
                "mbedtls_aes_crypt_cbc": 3,
            },
            "writers": {
                "memcpy": 0,
                "memmove": 0,
                "RAND_bytes": 0,
                "RAND_priv_bytes": 0,
                "getrandom": 0,
                "arc4random_buf": 0,
                "mbedtls_ctr_drbg_random": 1,
                "mbedtls_hardware_poll": 1,
                "Csm_RandomGenerate": 1,
                "generate_random_iv": 0,
                "read": 1,
            },
        },
        "remediation": "Generate a fresh random IV per message and transmit it alongside the ciphertext.",
    },
    {
        "id": "ECU-AUTH-001",
        "title": "Privileged action without authentication",
        "description": "Engine control, firmware write or DTC clear not preceded by an authentication check in the same function.",
        "cwe": "CWE-306",
        "severity": "high",
        "kind": "missing_auth",
        "parameters": {
            "privileged": [
                "clear_dtcs",
                "write_data_by_id",
                "write_firmware_to_ecu",
                "execute_engine_command",
                "control_engine_remotely",
                "access_phone_book",
                "control_navigation",
                "flash_*",
                "ecu_reset",
            ],
            "authenticators": [
                "authenticate*",
                "*_authenticate*",
                "verify_*",
                "validate_*",
                "check_auth*",
                "check_security_access*",
                "security_access*",
                "is_authenticated",
                "is_session_unlocked",
            ],
        },
        "remediation": "Gate the service behind UDS SecurityAccess (0x27) / authenticated session checks.",
    },
    {
        "id": "ECU-TNT-001",
        "title": "Externally controlled data reaches unbounded copy",
        "description": "Message payload or unvalidated parameter flows into a copy/format sink.",
        "cwe": "CWE-787",
        "severity": "critical",
        "kind": "taint_flow",
        "parameters": {
            "sinks": {
                "strcpy": "1",
                "strcat": "1",
                "sprintf": "1+",
                "vsprintf": "1+",
                "memcpy": "2",
                "memmove": "2",
            },
            **_TAINT_COMMON,
        },
        "remediation": "Validate CAN/OBD payload length against the destination size before copying.",
    },
    {
        "id": "ECU-TNT-002",
        "title": "Externally controlled data reaches command execution",
        "description": "Message payload or unvalidated parameter flows into a shell command.",
        "cwe": "CWE-78",
        "severity": "critical",
        "kind": "taint_flow",
        "parameters": {
            "sinks": {"system": "0", "popen": "0", "execl": "0+", "execlp": "0+", "execv": "0+", "execvp": "0+"},
            **_TAINT_COMMON,
        },
        "remediation": "Never build shell commands from diagnostic input; map requests to fixed actions.",
    },
    {
        "id": "ECU-TNT-003",
        "title": "Externally controlled data reaches SQL query",
        "description": "Parameter or received data flows into a query built and executed as text.",
        "cwe": "CWE-89",
        "severity": "critical",
        "kind": "taint_flow",
        "parameters": {
            "sinks": {
                "execute_sql_query": "0",
                "sqlite3_exec": "1",
                "sqlite3_prepare_v2": "1",
                "mysql_query": "1",
                "mysql_real_query": "1",
                "PQexec": "1",
            },
            **_TAINT_COMMON,
        },
        "remediation": "Use prepared statements with bound parameters.",
    },
    {
        "id": "ECU-UAF-001",
        "title": "Use after free",
        "description": "Pointer used after it was released in the same function.",
        "cwe": "CWE-416",
        "severity": "high",
        "kind": "use_after_free",
        "parameters": {"deallocators": ["free", "vPortFree", "cfree"]},
        "remediation": "Set the pointer to NULL after free() and do not dereference it afterwards.",
    },
    {
        "id": "ECU-INT-001",
        "title": "Allocation size arithmetic may overflow",
        "description": "Allocation size computed with unchecked arithmetic on a runtime value.",
        "cwe": "CWE-190",
        "severity": "medium",
        "kind": "arithmetic_size",
        "parameters": {
            "functions": {"malloc": [0], "calloc": [0, 1], "realloc": [1], "alloca": [0], "pvPortMalloc": [0]},
        },
        "remediation": "Check the multiplication/addition for overflow (or use calloc) before allocating.",
    },
]

DEFAULT_REGISTRY: tuple[RuleDefinition, ...] = load_registry(DEFAULT_RULE_TABLE)
