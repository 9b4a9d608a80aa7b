"""Security scanner.

Cross-cutting checks that run on every repository: hardcoded secrets,
sensitive and backup files, ``.env`` handling, file permissions, container
and CI configuration, and known-vulnerable dependency pins.
"""

from __future__ import annotations

import fnmatch
import re
from typing import Iterable, List, Optional, Pattern, Tuple

from ..advisories import advisory_findings, npm_lockfile_pins, npm_manifest_pins, requirements_pins
from ..logging_config import get_logger
from ..models import FileEntry, Finding, FindingKind, RepositorySnapshot, Severity
from ..scanning.ecosystems import ALL_LOCKFILES
from .base import AnalyzerContext, BaseAnalyzer
from .javascript import package_json

logger = get_logger(__name__)

# Order matters: the first matching pattern names the finding.
SECRET_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    (
        "private key",
        re.compile(r"-----BEGIN (?:RSA |EC |DSA |OPENSSH |PGP |ENCRYPTED )?PRIVATE KEY(?: BLOCK)?-----"),
    ),
    ("AWS access key", re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b")),
    (
        "AWS secret key",
        re.compile(r"(?i)aws_secret_access_key\s*[:=]\s*[\"']?[A-Za-z0-9/+=]{40}\b"),
    ),
    ("GitHub token", re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9]{36,}|github_pat_[A-Za-z0-9_]{22,})")),
    ("Slack token", re.compile(r"\bxox[abprs]-[A-Za-z0-9-]{10,}")),
    ("Anthropic API key", re.compile(r"\bsk-ant-[A-Za-z0-9_-]{20,}")),
    ("OpenAI API key", re.compile(r"\bsk-(?:proj-)?[A-Za-z0-9_-]{20,}")),
    ("Stripe live key", re.compile(r"\b(?:sk|rk)_live_[A-Za-z0-9]{20,}")),
    ("Google API key", re.compile(r"\bAIza[0-9A-Za-z_-]{35}\b")),
    (
        "connection string with credentials",
        re.compile(
            r"\b(?:postgres(?:ql)?|mysql|mariadb|mongodb(?:\+srv)?|redis|amqps?|mssql)://"
            r"[^\s:/@\"']+:([^\s@\"'/]+)@"
        ),
    ),
    (
        "hardcoded credential",
        re.compile(
            r"(?i)\b(?:api[_-]?key|apikey|client[_-]?secret|secret[_-]?key|secret|password|passwd"
            r"|auth[_-]?token|access[_-]?token|private[_-]?key)\b[\"']?\s*[:=]\s*[\"']([^\"'\s]{8,})[\"']"
        ),
    ),
)

# Values that are obviously not real credentials.
_PLACEHOLDER = re.compile(
    r"(?i)^(?:\$\{?|<|%\(|\{\{|process\.env|os\.environ|env\(|xxx|\*{3}|changeme|change_me|"
    r"your[_-]|example|placeholder|dummy|test|sample|password$|secret$|redacted|none$|null$)"
)

SKIP_SUFFIXES = frozenset(
    {
        ".md", ".markdown", ".rst", ".lock", ".sum",
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp", ".svg", ".pdf",
        ".zip", ".gz", ".tgz", ".bz2", ".xz", ".7z", ".tar", ".jar", ".war",
        ".woff", ".woff2", ".ttf", ".otf", ".eot",
        ".mp3", ".mp4", ".mov", ".avi", ".wav",
        ".exe", ".dll", ".so", ".dylib", ".o", ".a", ".class", ".pyc", ".wasm",
    }
)
ENV_TEMPLATES = (".env.example", ".env.template", ".env.sample", ".env.dist")

SENSITIVE_SUFFIXES = (".pem", ".key", ".p12", ".pfx", ".jks", ".keystore")
SENSITIVE_NAMES = ("id_rsa", "id_dsa", "id_ecdsa", "id_ed25519", "credentials.json", ".htpasswd")
SENSITIVE_GLOBS = ("service-account*.json",)
BACKUP_SUFFIXES = (".bak", ".backup", ".old", ".orig", ".swp")

MAX_UNPINNED_ACTIONS = 5

_DOCKER_LATEST = re.compile(r"^\s*FROM\s+\S+:latest\b", re.IGNORECASE)
_DOCKER_USER = re.compile(r"^\s*USER\s+\S+", re.IGNORECASE | re.MULTILINE)
_ECHOED_SECRET = re.compile(r"\b(?:echo|print|printf|Write-Host|console\.log)\b.*\$\{\{\s*secrets\.")
_ACTION_REF = re.compile(r"^\s*-?\s*uses:\s*([^\s#]+)")
_PINNED_REF = re.compile(r"@(?:[0-9a-f]{40}|v\d+(?:\.\d+)*)$")


class SecurityAnalyzer(BaseAnalyzer):
    name = "security"
    failure_severity = Severity.MEDIUM

    def analyze(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        findings: List[Finding] = []
        findings.extend(self._scan_secrets(snapshot, context))
        findings.extend(self._check_files(snapshot))
        findings.extend(self._check_env_files(snapshot))
        findings.extend(self._check_dockerfiles(snapshot))
        findings.extend(self._check_workflows(snapshot))
        findings.extend(self._check_web_stack(snapshot))
        findings.extend(self._check_dependencies(snapshot))
        return findings

    # --- secrets ---------------------------------------------------------------

    def _scan_secrets(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> List[Finding]:
        findings = []
        limit = context.config.max_scan_file_size_bytes
        for entry in snapshot.files:
            if not _scannable(entry):
                continue
            text = snapshot.read_text(entry.path, max_bytes=limit)
            if text is None or "\x00" in text[:8192]:
                continue
            for lineno, line in enumerate(text.splitlines(), start=1):
                label = match_secret(line)
                if label is not None:
                    findings.append(
                        self.finding(
                            FindingKind.SECRET_EXPOSURE,
                            Severity.CRITICAL,
                            f"Possible {label} committed to the repository",
                            path=entry.path,
                            line=lineno,
                        )
                    )
        logger.debug(f"Secret scan: {len(findings)} matches")
        return findings

    # --- files -----------------------------------------------------------------

    def _check_files(self, snapshot: RepositorySnapshot) -> List[Finding]:
        findings = []
        for entry in snapshot.files:
            if _is_sensitive(entry):
                findings.append(
                    self.finding(
                        FindingKind.SENSITIVE_FILE,
                        Severity.HIGH,
                        "Private key or credential file in repository",
                        path=entry.path,
                    )
                )
            elif entry.name.endswith(BACKUP_SUFFIXES) or entry.name.endswith("~"):
                findings.append(
                    self.finding(
                        FindingKind.SENSITIVE_FILE,
                        Severity.MEDIUM,
                        "Backup file may contain sensitive data",
                        path=entry.path,
                    )
                )
            if entry.is_world_writable:
                findings.append(
                    self.finding(
                        FindingKind.INSECURE_PERMISSION,
                        Severity.HIGH,
                        f"File is world-writable (mode {entry.mode:o})",
                        path=entry.path,
                    )
                )
        return findings

    def _check_env_files(self, snapshot: RepositorySnapshot) -> List[Finding]:
        env_files = [f for f in snapshot.files if _is_env_file(f.name)]
        if not env_files:
            return []
        findings = []
        gitignore = snapshot.read_text(".gitignore")
        if gitignore is None:
            findings.append(
                self.finding(
                    FindingKind.INSECURE_CONFIG,
                    Severity.CRITICAL,
                    f"{len(env_files)} .env file(s) present and no .gitignore",
                    path=env_files[0].path,
                )
            )
        else:
            patterns = parse_gitignore(gitignore)
            for entry in env_files:
                if not is_gitignored(entry.path, patterns):
                    findings.append(
                        self.finding(
                            FindingKind.INSECURE_CONFIG,
                            Severity.HIGH,
                            f"{entry.name} is not covered by .gitignore",
                            path=entry.path,
                        )
                    )
        if not any(snapshot.files_named(*ENV_TEMPLATES)):
            findings.append(
                self.finding(
                    FindingKind.MISSING_CONFIG,
                    Severity.MEDIUM,
                    "No .env.example documenting the environment variables",
                )
            )
        return findings

    # --- containers and CI -----------------------------------------------------

    def _check_dockerfiles(self, snapshot: RepositorySnapshot) -> List[Finding]:
        findings = []
        for entry in snapshot.files:
            if not (
                entry.name == "Dockerfile"
                or entry.name.startswith("Dockerfile.")
                or entry.name.endswith(".dockerfile")
            ):
                continue
            text = snapshot.read_text(entry.path) or ""
            if not _DOCKER_USER.search(text):
                findings.append(
                    self.finding(
                        FindingKind.INSECURE_CONFIG,
                        Severity.MEDIUM,
                        "Container runs as root: no USER instruction",
                        path=entry.path,
                    )
                )
            for lineno, line in enumerate(text.splitlines(), start=1):
                if _DOCKER_LATEST.match(line):
                    findings.append(
                        self.finding(
                            FindingKind.INSECURE_CONFIG,
                            Severity.LOW,
                            "Base image uses the :latest tag",
                            path=entry.path,
                            line=lineno,
                        )
                    )
        return findings

    def _check_workflows(self, snapshot: RepositorySnapshot) -> List[Finding]:
        findings = []
        unpinned = 0
        for entry in snapshot.files_under(".github/workflows"):
            if entry.suffix not in (".yml", ".yaml"):
                continue
            text = snapshot.read_text(entry.path) or ""
            for lineno, line in enumerate(text.splitlines(), start=1):
                if _ECHOED_SECRET.search(line):
                    findings.append(
                        self.finding(
                            FindingKind.INSECURE_CONFIG,
                            Severity.MEDIUM,
                            "Workflow step prints a secret to the log",
                            path=entry.path,
                            line=lineno,
                        )
                    )
                ref = _ACTION_REF.match(line)
                if ref and not ref.group(1).startswith(("./", "docker://")):
                    if not _PINNED_REF.search(ref.group(1)):
                        unpinned += 1
        if unpinned > MAX_UNPINNED_ACTIONS:
            findings.append(
                self.finding(
                    FindingKind.INSECURE_CONFIG,
                    Severity.LOW,
                    f"{unpinned} GitHub Actions are not pinned to a version tag or commit",
                )
            )
        return findings

    def _check_web_stack(self, snapshot: RepositorySnapshot) -> List[Finding]:
        pkg = package_json(snapshot)
        if pkg is None:
            return []
        deps = set(pkg.get("dependencies") or {})
        if "express" in deps and "helmet" not in deps:
            return [
                self.finding(
                    FindingKind.INSECURE_CONFIG,
                    Severity.MEDIUM,
                    "Express application without helmet security headers",
                    path="package.json",
                )
            ]
        return []

    # --- dependencies ----------------------------------------------------------

    def _check_dependencies(self, snapshot: RepositorySnapshot) -> List[Finding]:
        findings = []
        for manifest in snapshot.files_named("package.json"):
            directory = manifest.parent
            lock = f"{directory}/package-lock.json" if directory else "package-lock.json"
            if snapshot.has_file(lock):
                text = snapshot.read_text(lock) or ""
                pins = npm_lockfile_pins(text, lock)
            else:
                text = snapshot.read_text(manifest.path) or ""
                pins = npm_manifest_pins(text, manifest.path)
            findings.extend(advisory_findings("npm", pins, self.name))
        for req in snapshot.files:
            if req.suffix == ".txt" and req.name.startswith("requirements"):
                text = snapshot.read_text(req.path) or ""
                findings.extend(advisory_findings("pypi", requirements_pins(text, req.path), self.name))
        return findings


def match_secret(line: str) -> Optional[str]:
    """Label of the first secret pattern matching ``line``, or None."""
    for label, pattern in SECRET_PATTERNS:
        match = pattern.search(line)
        if match is None:
            continue
        if match.groups() and _PLACEHOLDER.match(match.group(1) or ""):
            continue
        return label
    return None


def parse_gitignore(text: str) -> List[Tuple[str, bool]]:
    """(pattern, negated) pairs in file order."""
    patterns = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        negated = line.startswith("!")
        if negated:
            line = line[1:]
        line = line.rstrip("/")
        if line.startswith("**/"):
            line = line[3:]
        patterns.append((line, negated))
    return patterns


def is_gitignored(path: str, patterns: List[Tuple[str, bool]]) -> bool:
    """Approximate gitignore matching; the last matching pattern wins."""
    name = path.rsplit("/", 1)[-1]
    ignored = False
    for pattern, negated in patterns:
        anchored = pattern.startswith("/")
        pat = pattern.lstrip("/")
        if anchored or "/" in pat:
            hit = fnmatch.fnmatchcase(path, pat)
        else:
            hit = fnmatch.fnmatchcase(name, pat) or any(
                fnmatch.fnmatchcase(part, pat) for part in path.split("/")[:-1]
            )
        if hit:
            ignored = not negated
    return ignored


def _scannable(entry: FileEntry) -> bool:
    if entry.suffix in SKIP_SUFFIXES:
        return False
    if entry.name in ALL_LOCKFILES or entry.name in ENV_TEMPLATES:
        return False
    # .env contents are expected to hold secrets; their handling is checked separately.
    return not _is_env_file(entry.name)


def _is_env_file(name: str) -> bool:
    return (name == ".env" or name.startswith(".env.")) and name not in ENV_TEMPLATES


def _is_sensitive(entry: FileEntry) -> bool:
    if entry.suffix in SENSITIVE_SUFFIXES or entry.name in SENSITIVE_NAMES:
        return True
    return any(fnmatch.fnmatchcase(entry.name, g) for g in SENSITIVE_GLOBS)
