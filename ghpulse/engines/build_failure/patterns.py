"""Static failure taxonomy for CI workflow runs.

Table order is priority: :func:`match_failure_pattern` returns the first
entry whose text occurs in the failure reason, so more specific patterns
must stay above broader ones (``timeout`` above ``runner``/``network``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

FailureType = Literal[
    "build", "test", "deployment", "dependency", "timeout", "infrastructure", "unknown"
]
Severity = Literal["low", "medium", "high", "critical"]


@dataclass(frozen=True)
class FailurePattern:
    type: FailureType
    match_text: str
    description: str
    severity: Severity
    category: str


FAILURE_PATTERNS: tuple[FailurePattern, ...] = (
    FailurePattern("build", "compilation failed", "Code compilation errors", "high", "build"),
    FailurePattern("build", "syntax error", "Syntax errors in code", "high", "build"),
    FailurePattern("test", "test failed", "Unit or integration test failures", "medium", "testing"),
    FailurePattern("test", "assertion error", "Test assertion failures", "medium", "testing"),
    FailurePattern(
        "deployment", "deployment failed", "Deployment process failures", "critical", "deployment"
    ),
    FailurePattern(
        "dependency",
        "module not found",
        "Missing or incorrect dependencies",
        "high",
        "dependencies",
    ),
    FailurePattern(
        "dependency", "package not found", "Package installation failures", "high", "dependencies"
    ),
    FailurePattern("timeout", "timeout", "Process or step timeouts", "medium", "performance"),
    FailurePattern("infrastructure", "runner", "CI/CD runner issues", "low", "infrastructure"),
    FailurePattern(
        "infrastructure", "network", "Network connectivity issues", "low", "infrastructure"
    ),
)

UNKNOWN_PATTERN = FailurePattern("unknown", "unknown", "Unknown failure type", "medium", "general")

SUGGESTED_FIXES: dict[str, str] = {
    "build": "Check compilation errors and fix syntax issues",
    "test": "Review failing tests and update test cases or fix implementation",
    "deployment": "Verify deployment configuration and target environment",
    "dependency": "Update dependencies or fix version conflicts",
    "timeout": "Optimize performance or increase timeout limits",
    "infrastructure": "Check runner availability and resource limits",
}
DEFAULT_FIX = "Review logs and error messages for specific guidance"


def match_failure_pattern(
    reason: str, patterns: tuple[FailurePattern, ...] = FAILURE_PATTERNS
) -> FailurePattern:
    """First pattern (case-insensitive substring) found in *reason*, else unknown."""
    lowered = reason.lower()
    for pattern in patterns:
        if pattern.match_text.lower() in lowered:
            return pattern
    return UNKNOWN_PATTERN


def suggested_fix(pattern: FailurePattern) -> str:
    return SUGGESTED_FIXES.get(pattern.type, DEFAULT_FIX)
