"""SecurityScanner: select repository files, run the detectors, score the findings."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from functools import lru_cache

import structlog

from ghpulse.engines.github.client import GitHubDataClient
from ghpulse.engines.security_scanner.detectors import DETECTORS, Vulnerability, scan_line

log = structlog.get_logger("ghpulse.engine.scanner")

SEVERITY_WEIGHTS: dict[str, int] = {"low": 1, "medium": 3, "high": 7, "critical": 15}
TYPE_MULTIPLIERS: dict[str, float] = {
    "env_var": 1.0,
    "api_key": 1.2,
    "aws_key": 1.5,
    "private_key": 2.0,
}
SEVERITY_PENALTIES: dict[str, int] = {"critical": 10, "high": 5, "medium": 2}

DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    "node_modules/**",
    ".git/**",
    "*.min.js",
    "*.bundle.js",
    "dist/**",
    "build/**",
    "coverage/**",
    "*.log",
)

DEFAULT_INCLUDE_PATTERNS: tuple[str, ...] = (
    "**/*.js",
    "**/*.ts",
    "**/*.jsx",
    "**/*.tsx",
    "**/*.py",
    "**/*.java",
    "**/*.php",
    "**/*.rb",
    "**/*.go",
    "**/*.rs",
    "**/*.cpp",
    "**/*.c",
    "**/*.h",
    "**/*.env*",
    "**/*.config.*",
    "**/*.json",
    "**/*.yaml",
    "**/*.yml",
    "**/*.xml",
    "**/*.properties",
    "**/*.ini",
    "**/*.conf",
)


@dataclass(frozen=True)
class ScanOptions:
    max_file_size: int = 1024 * 1024
    exclude_patterns: tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    include_patterns: tuple[str, ...] = DEFAULT_INCLUDE_PATTERNS
    max_files: int = 500


@dataclass(frozen=True)
class FileContent:
    path: str
    content: str
    size: int


@dataclass
class ScanResult:
    repository: str
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    risk_score: int = 0
    scanned_files: int = 0
    total_files: int = 0
    skipped_files: int = 0


# ── file selection ──────────────────────────────────────────────────────────


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Anchored, case-insensitive regex for a path glob.

    ``**/`` matches any number of leading directories (including none),
    a bare ``**`` matches anything, ``*`` stays within one path segment
    and ``?`` is one character.
    """
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append(".")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE)


def matches_pattern(path: str, pattern: str) -> bool:
    return glob_to_regex(pattern).match(path) is not None


def should_include_file(path: str, options: ScanOptions) -> bool:
    """Exclusion wins over inclusion."""
    if any(matches_pattern(path, p) for p in options.exclude_patterns):
        return False
    return any(matches_pattern(path, p) for p in options.include_patterns)


# ── scanning and scoring (pure) ─────────────────────────────────────────────


def scan_file_content(file: FileContent) -> list[Vulnerability]:
    found: list[Vulnerability] = []
    for number, line in enumerate(file.content.split("\n"), start=1):
        found.extend(scan_line(line, file.path, number, DETECTORS))
    return found


def scan_files(files: list[FileContent]) -> list[Vulnerability]:
    found: list[Vulnerability] = []
    for file in files:
        found.extend(scan_file_content(file))
    return found


def calculate_risk_score(vulnerabilities: list[Vulnerability]) -> int:
    """Weighted 0-100 score: severity weight times type multiplier plus flat penalties."""
    if not vulnerabilities:
        return 0
    total = 0.0
    for vuln in vulnerabilities:
        total += SEVERITY_WEIGHTS[vuln.severity] * TYPE_MULTIPLIERS[vuln.type]
        total += SEVERITY_PENALTIES.get(vuln.severity, 0)
    # half-up, so 33.5 scores 34
    return max(0, min(math.floor(total + 0.5), 100))


# ── repository scanning ─────────────────────────────────────────────────────


class SecurityScanner:
    def __init__(self, client: GitHubDataClient) -> None:
        self._client = client

    async def scan_repository(
        self, owner: str, repo: str, options: ScanOptions | None = None
    ) -> ScanResult:
        """Scan the default-branch tree of *owner*/*repo*.

        Tree listing errors propagate.  A single file that cannot be fetched
        is logged and skipped.
        """
        options = options or ScanOptions()
        repository = f"{owner}/{repo}"
        files, eligible, skipped = await self._collect_files(owner, repo, options)
        vulnerabilities = scan_files(files)
        result = ScanResult(
            repository=repository,
            vulnerabilities=vulnerabilities,
            risk_score=calculate_risk_score(vulnerabilities),
            scanned_files=len(files),
            total_files=eligible,
            skipped_files=skipped,
        )
        log.info(
            "scanner.completed",
            repository=repository,
            scanned_files=result.scanned_files,
            vulnerabilities=len(vulnerabilities),
            risk_score=result.risk_score,
        )
        return result

    async def scan_repositories(
        self, repositories: list[tuple[str, str]], options: ScanOptions | None = None
    ) -> dict[str, ScanResult]:
        """Best effort: a repository whose scan fails is logged and left out."""
        results: dict[str, ScanResult] = {}
        for owner, repo in repositories:
            try:
                results[f"{owner}/{repo}"] = await self.scan_repository(owner, repo, options)
            except Exception:
                log.error("scanner.repository_failed", repository=f"{owner}/{repo}", exc_info=True)
        return results

    async def _collect_files(
        self, owner: str, repo: str, options: ScanOptions
    ) -> tuple[list[FileContent], int, int]:
        tree = await self._client.get_repository_tree(owner, repo)
        eligible = [
            item
            for item in tree
            if item.get("type") == "blob" and should_include_file(item.get("path", ""), options)
        ]

        files: list[FileContent] = []
        seen: set[str] = set()
        skipped = 0
        for item in eligible[: options.max_files]:
            path = item["path"]
            if path in seen:
                continue
            size = item.get("size") or 0
            if size > options.max_file_size:
                log.debug("scanner.file_too_large", path=path, size=size)
                skipped += 1
                continue
            try:
                content = await self._client.get_repository_content(owner, repo, path)
            except Exception:
                log.warning(
                    "scanner.file_skipped",
                    repository=f"{owner}/{repo}",
                    path=path,
                    exc_info=True,
                )
                skipped += 1
                continue
            seen.add(path)
            files.append(FileContent(path=path, content=content, size=size or len(content)))
        return files, len(eligible), skipped
