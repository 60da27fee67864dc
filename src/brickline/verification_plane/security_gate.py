"""
brickline — security gate

File: src/brickline/verification_plane/security_gate.py
Last updated: 2026-10-19

Purpose
- Scan the verified fragment set once before assembly and decide whether it may
  proceed, needs a security addendum, or must be rejected.

What should be included in this file
- Phase 1 pattern scan over every deliverable (no generation calls).
- Phase 2 conversion of dropped upstream warnings into issues.
- Phase 3 optional deep review through the generation service.
- Scoring, decision policy, and deterministic addendum construction.

Functional requirements
- Deep review runs only when enabled, a client is configured, and the pattern
  scan found no critical issue.
- Deep review failures (transport or unparseable output) contribute no issues.
- The addendum is appended by the assembler; fragments are never rewritten.

Non-functional requirements
- Issue order is stable: pattern hits in fragment then rule order, dropped
  warnings in input order, deep-review issues in response order.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final

import structlog

from brickline.config.settings import SecuritySettings, resolve_security_settings
from brickline.domain.ids import ADDENDUM_ID_PREFIX, ISSUE_ID_PREFIX, IdFactory
from brickline.domain.models import (
    GateRecommendation,
    SecurityAddendum,
    SecurityCategory,
    SecurityIssue,
    SecurityScanResult,
    SecuritySeverity,
    VerifiedFragment,
    coerce_text_items,
    format_timestamp,
)
from brickline.security.rules import (
    DEFAULT_SECURITY_RULES,
    SecurityRule,
    iter_matching_rules,
    rules_for_policy,
)
from brickline.synthesis_plane.prompt_templates import PromptTemplateEngine
from brickline.synthesis_plane.providers.base import (
    GenerationClient,
    GenerationConfig,
    GenerationRequest,
    ProviderError,
    invoke_generation,
)
from brickline.utils.structured_text import extract_json

SEVERITY_WEIGHTS: Final[Mapping[SecuritySeverity, int]] = {
    SecuritySeverity.CRITICAL: 30,
    SecuritySeverity.HIGH: 15,
    SecuritySeverity.MEDIUM: 5,
    SecuritySeverity.LOW: 2,
    SecuritySeverity.INFO: 0,
}
MAX_SCORE: Final[int] = 100
ADDENDUM_TITLE: Final[str] = "Security Addendum"

_DEFAULT_DESCRIPTION: Final[str] = "Unspecified issue"
_DEFAULT_RECOMMENDATION: Final[str] = "Review and address"
_DROPPED_WARNING_RECOMMENDATION: Final[str] = "Review and address this warning before proceeding"
_FRAGMENT_SEPARATOR: Final[str] = "\n\n---\n\n"
_AFFECTED_KEYS: Final[tuple[str, ...]] = (
    "affectedFragments",
    "affected_fragments",
    "affectedBricks",
)

_ADDENDUM_RECOMMENDATIONS: Final[tuple[str, ...]] = (
    "Address all HIGH and CRITICAL issues before proceeding",
    "Include security review in the implementation phase",
    "Apply defense-in-depth principles",
    "Follow OWASP guidelines for web security",
)
_ADDENDUM_DISCLAIMER: Final[str] = (
    "This addendum is advisory. A full security audit should be performed\n"
    "on any implementation derived from these architectural plans."
)


@dataclass(frozen=True, slots=True)
class QuickSecurityCheck:
    """Pattern-only pre-check summary."""

    has_issues: bool
    critical_count: int
    high_count: int


def count_issues(issues: Iterable[SecurityIssue]) -> dict[SecuritySeverity, int]:
    tally = Counter(issue.severity for issue in issues)
    return {severity: tally.get(severity, 0) for severity in SecuritySeverity}


def compute_score(issues: Iterable[SecurityIssue]) -> int:
    """``100`` minus weighted deductions, floored at zero. Info issues cost nothing."""

    counts = count_issues(issues)
    deduction = sum(SEVERITY_WEIGHTS[severity] * count for severity, count in counts.items())
    return max(0, MAX_SCORE - deduction)


def decide(counts: Mapping[SecuritySeverity, int]) -> GateRecommendation:
    if counts.get(SecuritySeverity.CRITICAL, 0) > 0:
        return GateRecommendation.REJECT
    if counts.get(SecuritySeverity.HIGH, 0) > 0 or counts.get(SecuritySeverity.MEDIUM, 0) > 1:
        return GateRecommendation.ADD_ADDENDUM
    return GateRecommendation.PROCEED


def build_deep_scan_payload(fragments: Sequence[VerifiedFragment]) -> str:
    return _FRAGMENT_SEPARATOR.join(
        f"### Fragment: {fragment.id}\n"
        f"**Persona:** {fragment.persona}\n"
        f"**Instruction:** {fragment.instruction}\n\n"
        f"{fragment.deliverable}"
        for fragment in fragments
    )


def parse_deep_scan(text: str, *, ids: IdFactory | None = None) -> tuple[SecurityIssue, ...]:
    """Parse a deep-review response into issues; anything unreadable yields ``()``."""

    parsed = extract_json(text).as_mapping()
    if parsed is None:
        return ()
    raw_issues = parsed.get("issues")
    if not isinstance(raw_issues, list):
        return ()

    factory = ids if ids is not None else IdFactory()
    issues: list[SecurityIssue] = []
    for item in raw_issues:
        if not isinstance(item, Mapping):
            continue
        affected: object = None
        for key in _AFFECTED_KEYS:
            if key in item:
                affected = item[key]
                break
        issues.append(
            SecurityIssue(
                id=factory.new_id(ISSUE_ID_PREFIX),
                severity=_normalize_severity(item.get("severity")),
                category=_normalize_category(item.get("category")),
                description=_text_or_default(item.get("description"), _DEFAULT_DESCRIPTION),
                affected_fragments=coerce_text_items(affected),
                recommendation=_text_or_default(
                    item.get("recommendation"), _DEFAULT_RECOMMENDATION
                ),
            )
        )
    return tuple(issues)


def build_addendum(
    issues: Sequence[SecurityIssue],
    fragments: Sequence[VerifiedFragment],
    *,
    ids: IdFactory | None = None,
) -> SecurityAddendum:
    """Render the advisory addendum; issues are grouped by severity, critical first."""

    factory = ids if ids is not None else IdFactory()
    generated_at = factory.now()
    reportable = [issue for issue in issues if issue.severity is not SecuritySeverity.INFO]

    lines = [
        "# SECURITY ADDENDUM",
        "",
        f"**Generated:** {format_timestamp(generated_at)}",
        f"**Reviewed Fragments:** {len(fragments)}",
        f"**Issues Found:** {len(reportable)}",
        "",
        "## SECURITY CONSIDERATIONS",
        "",
        "The following security considerations should be addressed during implementation:",
    ]
    for severity in SecuritySeverity:
        group = [issue for issue in reportable if issue.severity is severity]
        if not group:
            continue
        lines.extend(["", f"### {severity.value.upper()}", ""])
        for issue in group:
            lines.append(f"- [{severity.value.upper()}] {issue.description}")
            lines.append(f"  Recommendation: {issue.recommendation}")
            if issue.affected_fragments:
                lines.append(f"  Affected fragments: {', '.join(issue.affected_fragments)}")

    lines.extend(["", "## RECOMMENDATIONS", ""])
    lines.extend(
        f"{index}. {item}" for index, item in enumerate(_ADDENDUM_RECOMMENDATIONS, start=1)
    )
    lines.extend(["", "## DISCLAIMER", "", _ADDENDUM_DISCLAIMER])

    return SecurityAddendum(
        id=factory.new_id(ADDENDUM_ID_PREFIX),
        title=ADDENDUM_TITLE,
        content="\n".join(lines),
        addressed_issues=tuple(issue.id for issue in reportable),
        generated_at=generated_at,
    )


def quick_security_check(
    texts: Iterable[str],
    *,
    rules: Iterable[SecurityRule] = DEFAULT_SECURITY_RULES,
) -> QuickSecurityCheck:
    """Pattern-only check over raw texts, for pre-checks before a full scan."""

    active = tuple(rules)
    severities = [rule.severity for text in texts for rule in iter_matching_rules(text, active)]
    return QuickSecurityCheck(
        has_issues=bool(severities),
        critical_count=severities.count(SecuritySeverity.CRITICAL),
        high_count=severities.count(SecuritySeverity.HIGH),
    )


def format_scan_result(result: SecurityScanResult) -> str:
    if result.recommendation is GateRecommendation.REJECT:
        status = "REJECTED"
    elif result.recommendation is GateRecommendation.ADD_ADDENDUM:
        status = "PASSED WITH ADDENDUM"
    else:
        status = "PASSED"

    lines = [
        f"## Security Scan Result: {status}",
        "",
        f"**Score:** {result.score}/{MAX_SCORE}",
        f"**Issues:** {len(result.issues)} found",
    ]
    if result.issues:
        lines.extend(["", "### Issue Breakdown"])
        lines.extend(
            f"- {severity.value.capitalize()}: {result.issue_counts.get(severity, 0)}"
            for severity in SecuritySeverity
        )
        lines.extend(["", "### Details"])
        for index, issue in enumerate(result.issues, start=1):
            lines.append(f"{index}. [{issue.severity.value.upper()}] {issue.description}")
            lines.append(f"   Recommendation: {issue.recommendation}")
    return "\n".join(lines) + "\n"


class SecurityGate:
    """Three-phase scanner with a deterministic score and recommendation."""

    def __init__(
        self,
        client: GenerationClient | None = None,
        *,
        settings: SecuritySettings | Mapping[str, object] | None = None,
        ids: IdFactory | None = None,
        templates: PromptTemplateEngine | None = None,
        logger: Any | None = None,
    ) -> None:
        self._client = client
        self._settings = resolve_security_settings(settings)
        self._ids = ids if ids is not None else IdFactory()
        self._templates = templates
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._rules = rules_for_policy(
            allow_code_generation=self._settings.allow_code_generation
        )

    @property
    def settings(self) -> SecuritySettings:
        return self._settings

    @property
    def rules(self) -> tuple[SecurityRule, ...]:
        return self._rules

    def pattern_scan(self, fragments: Sequence[VerifiedFragment]) -> tuple[SecurityIssue, ...]:
        issues: list[SecurityIssue] = []
        for fragment in fragments:
            for rule in iter_matching_rules(fragment.deliverable, self._rules):
                issues.append(
                    SecurityIssue(
                        id=self._ids.new_id(ISSUE_ID_PREFIX),
                        severity=rule.severity,
                        category=rule.category,
                        description=rule.message,
                        affected_fragments=(fragment.id,),
                        recommendation=f"Review and fix: {rule.message}",
                    )
                )
        return tuple(issues)

    def dropped_warning_issues(self, warnings: Sequence[str]) -> tuple[SecurityIssue, ...]:
        return tuple(
            SecurityIssue(
                id=self._ids.new_id(ISSUE_ID_PREFIX),
                severity=SecuritySeverity.MEDIUM,
                category=SecurityCategory.DROPPED_WARNING,
                description=f'Warning was raised but not addressed: "{warning}"',
                recommendation=_DROPPED_WARNING_RECOMMENDATION,
            )
            for warning in warnings
        )

    async def deep_scan(
        self, fragments: Sequence[VerifiedFragment]
    ) -> tuple[tuple[SecurityIssue, ...], str | None]:
        """Run the review call. Returns ``(issues, raw_response)``; never raises on transport."""

        if self._client is None:
            return (), None
        rendered = self._template_engine().render(
            "security_review",
            variables={
                "fragments_payload": build_deep_scan_payload(fragments),
                "allow_code_generation": self._settings.allow_code_generation,
            },
        )
        try:
            response = await invoke_generation(
                self._client,
                GenerationRequest(
                    model=self._settings.model,
                    contents=rendered.prompt,
                    config=GenerationConfig(
                        temperature=self._settings.temperature,
                        max_output_tokens=self._settings.max_output_tokens,
                    ),
                ),
                timeout_seconds=self._settings.timeout_seconds,
                provider="security",
            )
        except ProviderError as exc:
            self._logger.warning(
                "security_deep_scan_failed",
                code=exc.code,
                retryable=exc.retryable,
                error=str(exc),
            )
            return (), None

        issues = parse_deep_scan(response.text, ids=self._ids)
        if not issues and extract_json(response.text).as_mapping() is None:
            self._logger.warning("security_deep_scan_unparseable", model=response.model_used)
        return issues, response.text

    async def scan(
        self,
        fragments: Sequence[VerifiedFragment],
        dropped_warnings: Sequence[str] = (),
    ) -> SecurityScanResult:
        fragment_list = tuple(fragments)
        issues = list(self.pattern_scan(fragment_list))
        issues.extend(self.dropped_warning_issues(tuple(dropped_warnings)))

        raw_response: str | None = None
        deep_scan_ran = False
        pattern_critical = count_issues(issues)[SecuritySeverity.CRITICAL]
        if self._settings.deep_analysis and self._client is not None and pattern_critical == 0:
            deep_scan_ran = True
            deep_issues, raw_response = await self.deep_scan(fragment_list)
            issues.extend(deep_issues)

        counts = count_issues(issues)
        recommendation = decide(counts)
        addendum = (
            build_addendum(issues, fragment_list, ids=self._ids)
            if recommendation is GateRecommendation.ADD_ADDENDUM
            else None
        )
        result = SecurityScanResult(
            passed=recommendation is not GateRecommendation.REJECT,
            score=compute_score(issues),
            issues=tuple(issues),
            issue_counts=counts,
            recommendation=recommendation,
            addendum=addendum,
            raw_response=raw_response,
        )
        self._logger.info(
            "security_scan_completed",
            fragment_count=len(fragment_list),
            score=result.score,
            recommendation=result.recommendation.value,
            deep_scan_ran=deep_scan_ran,
            **{f"{severity.value}_count": count for severity, count in counts.items()},
        )
        return result

    def _template_engine(self) -> PromptTemplateEngine:
        if self._templates is None:
            self._templates = PromptTemplateEngine()
        return self._templates


def _normalize_severity(value: object) -> SecuritySeverity:
    if isinstance(value, str):
        try:
            return SecuritySeverity(value.strip().lower())
        except ValueError:
            pass
    return SecuritySeverity.MEDIUM


def _normalize_category(value: object) -> SecurityCategory:
    if isinstance(value, str):
        try:
            return SecurityCategory(value.strip().lower())
        except ValueError:
            pass
    return SecurityCategory.OTHER


def _text_or_default(value: object, default: str) -> str:
    if not isinstance(value, str):
        return default
    return value.strip() or default


__all__ = [
    "ADDENDUM_TITLE",
    "MAX_SCORE",
    "QuickSecurityCheck",
    "SEVERITY_WEIGHTS",
    "SecurityGate",
    "build_addendum",
    "build_deep_scan_payload",
    "compute_score",
    "count_issues",
    "decide",
    "format_scan_result",
    "parse_deep_scan",
    "quick_security_check",
]
