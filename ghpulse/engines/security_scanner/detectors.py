"""Secret detectors: a flat table of regex records applied line by line.

Adding a detector is a data change.  Each :class:`Detector` names its
vulnerability type, severity and description, and may carry a validator
that rejects a raw match before it is reported.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

VulnerabilityType = Literal["env_var", "aws_key", "api_key", "private_key"]
Severity = Literal["low", "medium", "high", "critical"]

SUGGESTIONS: dict[str, str] = {
    "env_var": "Move sensitive values to environment variables or secure configuration",
    "aws_key": "Use AWS IAM roles, environment variables, or AWS Secrets Manager",
    "api_key": "Store API keys in environment variables or secure key management systems",
    "private_key": "Remove private keys from repository and use secure key management",
}


@dataclass(frozen=True)
class Detector:
    type: VulnerabilityType
    regex: re.Pattern[str]
    severity: Severity
    description: str
    validator: Callable[[str], bool] | None = None


@dataclass(frozen=True)
class Vulnerability:
    type: VulnerabilityType
    severity: Severity
    file: str
    line: int
    description: str
    suggestion: str


_ALL_DIGITS_RE = re.compile(r"^[0-9]+$")


def _looks_like_aws_secret(candidate: str) -> bool:
    """Base64 blob heuristic: needs a base64 symbol and both letter cases."""
    if _ALL_DIGITS_RE.match(candidate):
        return False
    if not any(ch in candidate for ch in "/+="):
        return False
    return any(ch.isupper() for ch in candidate) and any(ch.islower() for ch in candidate)


def _not_degenerate_hex(candidate: str) -> bool:
    return candidate.strip("0") != "" and candidate.strip("f") != ""


DETECTORS: tuple[Detector, ...] = (
    # hardcoded environment-style assignments
    Detector(
        "env_var",
        re.compile(r"(?:^|[^a-zA-Z0-9_])([A-Z_][A-Z0-9_]*)\s*=\s*[\"']([^\"'\s]{8,})[\"']"),
        "medium",
        "Hardcoded environment variable detected",
    ),
    Detector(
        "env_var",
        re.compile(
            r"(?:password|secret|key|token|api_key|auth)\s*[:=]\s*[\"']([^\"'\s]{6,})[\"']",
            re.IGNORECASE,
        ),
        "high",
        "Hardcoded sensitive credential detected",
    ),
    Detector(
        "env_var",
        re.compile(r"process\.env\.([A-Z_][A-Z0-9_]*)\s*\|\|\s*[\"']([^\"'\s]{6,})[\"']"),
        "medium",
        "Environment variable with hardcoded fallback",
    ),
    Detector(
        "env_var",
        re.compile(
            r"os\.(?:getenv|environ\.get)\(\s*[\"']([A-Z_][A-Z0-9_]*)[\"']\s*,"
            r"\s*[\"']([^\"'\s]{6,})[\"']"
        ),
        "medium",
        "Environment variable with hardcoded fallback",
    ),
    # AWS
    Detector("aws_key", re.compile(r"AKIA[0-9A-Z]{16}"), "critical", "AWS Access Key ID detected"),
    Detector(
        "aws_key",
        re.compile(r"(?<![A-Za-z0-9/+=])[A-Za-z0-9/+=]{40}(?![A-Za-z0-9/+=])"),
        "critical",
        "Potential AWS Secret Access Key detected",
        _looks_like_aws_secret,
    ),
    Detector(
        "aws_key",
        re.compile(
            r"aws[_-]?(?:access[_-]?key|secret[_-]?key|session[_-]?token)\s*[:=]\s*"
            r"[\"']([^\"'\s]{16,})[\"']",
            re.IGNORECASE,
        ),
        "critical",
        "AWS credential in configuration detected",
    ),
    # API keys and tokens
    Detector(
        "api_key",
        re.compile(
            r"(?:api[_-]?key|token|secret)\s*[:=]\s*[\"']([a-zA-Z0-9_-]{20,})[\"']",
            re.IGNORECASE,
        ),
        "high",
        "Generic API key or token detected",
    ),
    Detector("api_key", re.compile(r"sk-[a-zA-Z0-9]{48}"), "critical", "OpenAI API key detected"),
    Detector(
        "api_key",
        re.compile(r"ghp_[a-zA-Z0-9]{36}"),
        "critical",
        "GitHub Personal Access Token detected",
    ),
    Detector(
        "api_key", re.compile(r"gho_[a-zA-Z0-9]{36}"), "critical", "GitHub OAuth Token detected"
    ),
    Detector("api_key", re.compile(r"AIza[0-9A-Za-z_-]{35}"), "high", "Google API key detected"),
    Detector(
        "api_key",
        re.compile(r"[0-9a-f]{32}"),
        "medium",
        "Potential MD5 hash or API key detected",
        _not_degenerate_hex,
    ),
    # PEM headers
    Detector(
        "private_key",
        re.compile(r"-----BEGIN\s+(?:RSA\s+)?PRIVATE\s+KEY-----"),
        "critical",
        "RSA private key detected",
    ),
    Detector(
        "private_key",
        re.compile(r"-----BEGIN\s+DSA\s+PRIVATE\s+KEY-----"),
        "critical",
        "DSA private key detected",
    ),
    Detector(
        "private_key",
        re.compile(r"-----BEGIN\s+EC\s+PRIVATE\s+KEY-----"),
        "critical",
        "ECDSA private key detected",
    ),
    Detector(
        "private_key",
        re.compile(r"-----BEGIN\s+OPENSSH\s+PRIVATE\s+KEY-----"),
        "critical",
        "OpenSSH private key detected",
    ),
    Detector(
        "private_key",
        re.compile(r"-----BEGIN\s+PGP\s+PRIVATE\s+KEY\s+BLOCK-----"),
        "critical",
        "PGP private key detected",
    ),
    Detector(
        "private_key",
        re.compile(r"-----BEGIN\s+CERTIFICATE-----"),
        "medium",
        "Certificate detected",
    ),
)


def scan_line(
    line: str,
    path: str,
    line_number: int,
    detectors: tuple[Detector, ...] = DETECTORS,
) -> list[Vulnerability]:
    """Run every detector over one line; each accepted match is one finding."""
    found: list[Vulnerability] = []
    for detector in detectors:
        for match in detector.regex.finditer(line):
            if detector.validator is not None and not detector.validator(match.group(0)):
                continue
            found.append(
                Vulnerability(
                    type=detector.type,
                    severity=detector.severity,
                    file=path,
                    line=line_number,
                    description=detector.description,
                    suggestion=SUGGESTIONS[detector.type],
                )
            )
    return found
