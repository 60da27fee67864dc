"""
brickline — security pattern rules

File: src/brickline/security/rules.py
Last updated: 2026-10-19

Purpose
- Declares the ordered pattern table used by the security gate's zero-cost scan.

What should be included in this file
- ``SecurityRule`` records with precompiled, case-insensitive patterns.
- The default rule table in deterministic evaluation order.
- Helpers to filter the table and to match one text against it.

Functional requirements
- One hit per rule per text: a rule either matches or it does not.
- Rule order is part of the contract; issues are emitted in table order.

Non-functional requirements
- Must be pure and side-effect free.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Final

from brickline.domain.models import SecurityCategory, SecuritySeverity


@dataclass(frozen=True, slots=True)
class SecurityRule:
    """One unsafe-pattern rule: a match yields exactly one issue."""

    rule_id: str
    pattern: re.Pattern[str]
    category: SecurityCategory
    severity: SecuritySeverity
    message: str

    def __post_init__(self) -> None:
        if not self.rule_id.strip():
            raise ValueError("SecurityRule.rule_id cannot be empty")
        if isinstance(self.pattern, str):
            object.__setattr__(self, "pattern", re.compile(self.pattern, re.IGNORECASE))
        object.__setattr__(self, "category", SecurityCategory(self.category))
        object.__setattr__(self, "severity", SecuritySeverity(self.severity))

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def _rule(
    rule_id: str,
    pattern: str,
    category: SecurityCategory,
    severity: SecuritySeverity,
    message: str,
) -> SecurityRule:
    return SecurityRule(
        rule_id=rule_id,
        pattern=re.compile(pattern, re.IGNORECASE),
        category=category,
        severity=severity,
        message=message,
    )


_UNSAFE = SecurityCategory.UNSAFE_OPERATION
_VALIDATION = SecurityCategory.INPUT_VALIDATION

DEFAULT_SECURITY_RULES: Final[tuple[SecurityRule, ...]] = (
    _rule(
        "eval_call",
        r"\beval\s*\(",
        _UNSAFE,
        SecuritySeverity.CRITICAL,
        "Use of eval() is dangerous and allows code injection",
    ),
    _rule(
        "inner_html_assignment",
        r"\binnerHTML\s*=",
        _UNSAFE,
        SecuritySeverity.HIGH,
        "innerHTML can lead to XSS vulnerabilities",
    ),
    _rule(
        "document_write",
        r"\bdocument\.write\s*\(",
        _UNSAFE,
        SecuritySeverity.HIGH,
        "document.write() can be exploited for XSS",
    ),
    _rule(
        "function_constructor",
        r"new\s+Function\s*\(",
        _UNSAFE,
        SecuritySeverity.CRITICAL,
        "new Function() is similar to eval() and equally dangerous",
    ),
    _rule(
        "string_timeout",
        r"\bsetTimeout\s*\(\s*['\"`]",
        _UNSAFE,
        SecuritySeverity.MEDIUM,
        "setTimeout with string argument is like eval()",
    ),
    _rule(
        "string_interval",
        r"\bsetInterval\s*\(\s*['\"`]",
        _UNSAFE,
        SecuritySeverity.MEDIUM,
        "setInterval with string argument is like eval()",
    ),
    _rule(
        "unvalidated_user_input",
        r"user\s*[.\[].*without.*valid",
        _VALIDATION,
        SecuritySeverity.HIGH,
        "User input may lack validation",
    ),
    _rule(
        "missing_validation_phrase",
        r"no\s+(?:input\s+)?validation",
        _VALIDATION,
        SecuritySeverity.HIGH,
        "Explicit mention of missing validation",
    ),
    _rule(
        "trusted_user_input",
        r"trust.*user.*input",
        _VALIDATION,
        SecuritySeverity.CRITICAL,
        "Trusting user input without sanitization",
    ),
    _rule(
        "sql_template_interpolation",
        r"\$\{.*\}.*(?:SELECT|INSERT|UPDATE|DELETE|WHERE)",
        _UNSAFE,
        SecuritySeverity.CRITICAL,
        "Potential SQL injection via string interpolation",
    ),
    _rule(
        "sql_concatenation",
        r"['\"`]\s*\+\s*.*\+\s*['\"`].*(?:SELECT|INSERT|UPDATE|DELETE)",
        _UNSAFE,
        SecuritySeverity.CRITICAL,
        "SQL query built with string concatenation",
    ),
    _rule(
        "hardcoded_credential",
        r"(?:password|secret|api_?key|token)\s*[:=]\s*['\"`][^'\"]+['\"`]",
        SecurityCategory.ARCHITECTURAL,
        SecuritySeverity.CRITICAL,
        "Hardcoded secret or credential detected",
    ),
    _rule(
        "large_code_block",
        r"```(?:javascript|typescript|python|java|csharp)\s*\n(?:[^\n]+\n){20,}",
        SecurityCategory.CODE_GENERATION,
        SecuritySeverity.MEDIUM,
        "Large code block detected - this should be architecture/plans only, not implementation",
    ),
)


def rules_for_policy(
    *,
    allow_code_generation: bool,
    rules: Iterable[SecurityRule] = DEFAULT_SECURITY_RULES,
) -> tuple[SecurityRule, ...]:
    """Return the active rule table; code-generation rules drop out when code is allowed."""

    if not allow_code_generation:
        return tuple(rules)
    return tuple(rule for rule in rules if rule.category is not SecurityCategory.CODE_GENERATION)


def iter_matching_rules(text: str, rules: Iterable[SecurityRule]) -> Iterator[SecurityRule]:
    for rule in rules:
        if rule.matches(text):
            yield rule


__all__ = [
    "DEFAULT_SECURITY_RULES",
    "SecurityRule",
    "iter_matching_rules",
    "rules_for_policy",
]
