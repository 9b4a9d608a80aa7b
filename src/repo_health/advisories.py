"""Dependency advisories.

Three pieces live here:

* the fixed mapping from advisory-source severities (npm, OSV, RustSec,
  CVSS scores) onto the five-level ``Severity`` scale,
* a small offline table of well-known vulnerable releases, matched against
  exact pins in manifests and lockfiles,
* parsers for the JSON emitted by ``npm audit``, ``pip-audit`` and
  ``cargo audit``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .models import Finding, FindingKind, Location, Severity

# Unknown severities are treated as medium rather than dropped.
SEVERITY_MAP: Dict[str, Severity] = {
    "critical": Severity.CRITICAL,
    "high": Severity.HIGH,
    "important": Severity.HIGH,
    "moderate": Severity.MEDIUM,
    "medium": Severity.MEDIUM,
    "low": Severity.LOW,
    "info": Severity.INFO,
    "informational": Severity.INFO,
    "none": Severity.INFO,
    "negligible": Severity.INFO,
    "unknown": Severity.MEDIUM,
}


def map_severity(value: Any) -> Severity:
    """Map an advisory severity label or CVSS base score to ``Severity``."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _from_cvss(float(value))
    text = str(value or "unknown").strip().lower()
    try:
        return _from_cvss(float(text))
    except ValueError:
        pass
    return SEVERITY_MAP.get(text, Severity.MEDIUM)


def _from_cvss(score: float) -> Severity:
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    if score > 0.0:
        return Severity.LOW
    return Severity.INFO


_VERSION_PART = re.compile(r"\d+")


def version_tuple(version: str) -> Tuple[int, ...]:
    """Numeric release tuple: ``"v4.17.21-rc1"`` -> ``(4, 17, 21)``."""
    core = version.strip().lstrip("vV=").split("-", 1)[0].split("+", 1)[0]
    parts = []
    for piece in core.split(".")[:4]:
        match = _VERSION_PART.match(piece)
        if not match:
            break
        parts.append(int(match.group()))
    return tuple(parts)


@dataclass(frozen=True)
class Advisory:
    ecosystem: str  # "npm" or "pypi"
    package: str
    fixed_in: str  # first unaffected release
    severity: str  # label as published by the advisory source
    identifier: str
    summary: str

    def affects(self, version: str) -> bool:
        parsed = version_tuple(version)
        return bool(parsed) and parsed < version_tuple(self.fixed_in)


KNOWN_ADVISORIES: Tuple[Advisory, ...] = (
    Advisory("npm", "lodash", "4.17.21", "high", "CVE-2021-23337", "command injection in template"),
    Advisory("npm", "minimist", "1.2.6", "critical", "CVE-2021-44906", "prototype pollution"),
    Advisory("npm", "node-fetch", "2.6.7", "high", "CVE-2022-0235", "exposure of sensitive information"),
    Advisory("npm", "axios", "0.21.2", "high", "CVE-2021-3749", "regular expression denial of service"),
    Advisory("pypi", "pyyaml", "5.4", "critical", "CVE-2020-14343", "arbitrary code execution in full_load"),
    Advisory("pypi", "requests", "2.31.0", "moderate", "CVE-2023-32681", "Proxy-Authorization header leak"),
    Advisory("pypi", "urllib3", "1.26.18", "moderate", "CVE-2023-45803", "request body kept on redirect"),
    Advisory("pypi", "jinja2", "3.1.3", "moderate", "CVE-2024-22195", "XSS via xmlattr filter"),
    Advisory("pypi", "flask", "2.2.5", "high", "CVE-2023-30861", "session cookie disclosure"),
)


def _normalize_name(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


def lookup_advisories(ecosystem: str, package: str, version: str) -> List[Advisory]:
    name = _normalize_name(package)
    return [
        adv
        for adv in KNOWN_ADVISORIES
        if adv.ecosystem == ecosystem and _normalize_name(adv.package) == name and adv.affects(version)
    ]


# --- exact pins in manifests -------------------------------------------------

_NPM_EXACT = re.compile(r"^=?v?(\d+(?:\.\d+){0,3})$")
_REQ_PIN = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)(?:\[[^\]]*\])?\s*==\s*([0-9][^\s;#,]*)")


@dataclass(frozen=True)
class PinnedDependency:
    package: str
    version: str
    path: str
    line: Optional[int] = None


def npm_manifest_pins(text: str, path: str) -> Iterator[PinnedDependency]:
    """Exactly pinned entries of a ``package.json``; ranges are ignored."""
    try:
        data = json.loads(text)
    except ValueError:
        return
    if not isinstance(data, dict):
        return
    lines = text.splitlines()
    for section in ("dependencies", "devDependencies", "optionalDependencies"):
        deps = data.get(section)
        if not isinstance(deps, dict):
            continue
        for name, spec in deps.items():
            if not isinstance(spec, str):
                continue
            match = _NPM_EXACT.match(spec.strip())
            if match:
                yield PinnedDependency(name, match.group(1), path, _line_of(lines, f'"{name}"'))


def npm_lockfile_pins(text: str, path: str) -> Iterator[PinnedDependency]:
    """Resolved versions from ``package-lock.json`` (v1 and v2/v3 layouts)."""
    try:
        data = json.loads(text)
    except ValueError:
        return
    if not isinstance(data, dict):
        return
    seen = set()
    packages = data.get("packages")
    if isinstance(packages, dict):
        for key, meta in packages.items():
            if not key or not isinstance(meta, dict) or "version" not in meta:
                continue
            name = key.rsplit("node_modules/", 1)[-1]
            pin = (name, str(meta["version"]))
            if pin not in seen:
                seen.add(pin)
                yield PinnedDependency(name, pin[1], path)
    deps = data.get("dependencies")
    if isinstance(deps, dict):
        for name, meta in deps.items():
            if isinstance(meta, dict) and "version" in meta:
                pin = (name, str(meta["version"]))
                if pin not in seen:
                    seen.add(pin)
                    yield PinnedDependency(name, pin[1], path)


def requirements_pins(text: str, path: str) -> Iterator[PinnedDependency]:
    """``name==version`` lines of a requirements file."""
    for lineno, line in enumerate(text.splitlines(), start=1):
        match = _REQ_PIN.match(line)
        if match:
            yield PinnedDependency(match.group(1), match.group(2), path, lineno)


def _line_of(lines: List[str], needle: str) -> Optional[int]:
    for idx, line in enumerate(lines, start=1):
        if needle in line:
            return idx
    return None


def advisory_findings(
    ecosystem: str, pins: Iterator[PinnedDependency], source: str
) -> List[Finding]:
    findings = []
    for pin in pins:
        for adv in lookup_advisories(ecosystem, pin.package, pin.version):
            findings.append(
                Finding(
                    kind=FindingKind.VULNERABILITY,
                    severity=map_severity(adv.severity),
                    source=source,
                    message=(
                        f"{pin.package} {pin.version} is affected by {adv.identifier} "
                        f"({adv.summary}); upgrade to {adv.fixed_in} or later"
                    ),
                    location=Location(pin.path, pin.line),
                )
            )
    return findings


# --- audit tool output -------------------------------------------------------


@dataclass(frozen=True)
class VulnerabilityRecord:
    package: str
    severity: Severity
    title: str
    identifier: str = ""
    version: str = ""

    def to_finding(self, source: str, path: Optional[str]) -> Finding:
        ref = f" ({self.identifier})" if self.identifier else ""
        version = f" {self.version}" if self.version else ""
        return Finding(
            kind=FindingKind.VULNERABILITY,
            severity=self.severity,
            source=source,
            message=f"{self.package}{version}: {self.title}{ref}",
            location=Location(path) if path else None,
        )


def _load_json(text: str, tool: str) -> Any:
    # Some tools print banners before the JSON document.
    start = min((i for i in (text.find("{"), text.find("[")) if i >= 0), default=-1)
    if start < 0:
        raise ValueError(f"{tool} produced no JSON output")
    return json.loads(text[start:])


def parse_npm_audit(text: str) -> List[VulnerabilityRecord]:
    """Parse ``npm audit --json`` (npm 6 ``advisories`` and npm 7+ ``vulnerabilities``).

    Raises:
        ValueError: output is not an npm audit report
    """
    data = _load_json(text, "npm audit")
    if not isinstance(data, dict):
        raise ValueError("npm audit output is not an object")
    records = []
    if isinstance(data.get("vulnerabilities"), dict):
        for name, vuln in sorted(data["vulnerabilities"].items()):
            if not isinstance(vuln, dict):
                continue
            title, identifier = _npm_via(vuln.get("via"))
            records.append(
                VulnerabilityRecord(
                    package=name,
                    severity=map_severity(vuln.get("severity")),
                    title=title or f"vulnerable range {vuln.get('range', '*')}",
                    identifier=identifier,
                )
            )
    elif isinstance(data.get("advisories"), dict):
        for key, adv in sorted(data["advisories"].items()):
            if not isinstance(adv, dict):
                continue
            records.append(
                VulnerabilityRecord(
                    package=str(adv.get("module_name", key)),
                    severity=map_severity(adv.get("severity")),
                    title=str(adv.get("title", "advisory")),
                    identifier=str(adv.get("url") or adv.get("id") or ""),
                )
            )
    elif "error" in data:
        error = data["error"]
        summary = error.get("summary") if isinstance(error, dict) else error
        raise ValueError(f"npm audit error: {summary}")
    return records


def _npm_via(via: Any) -> Tuple[str, str]:
    if not isinstance(via, list):
        return "", ""
    for item in via:
        if isinstance(item, dict):
            return str(item.get("title", "")), str(item.get("url", ""))
    # Transitive only: via lists the vulnerable dependency names.
    names = [str(v) for v in via if isinstance(v, str)]
    return (f"depends on vulnerable {', '.join(names)}" if names else ""), ""


def parse_pip_audit(text: str) -> List[VulnerabilityRecord]:
    """Parse ``pip-audit -f json``.

    pip-audit reports no severity, so its records map as ``unknown``.
    """
    data = _load_json(text, "pip-audit")
    deps = data.get("dependencies") if isinstance(data, dict) else data
    if not isinstance(deps, list):
        raise ValueError("pip-audit output has no dependency list")
    records = []
    for dep in deps:
        if not isinstance(dep, dict):
            raise ValueError("pip-audit dependency entry is not an object")
        vulns = dep.get("vulns") or []
        if not isinstance(vulns, list):
            raise ValueError(f"pip-audit vulns for {dep.get('name', '?')} is not a list")
        for vuln in vulns:
            if not isinstance(vuln, dict):
                raise ValueError("pip-audit vulnerability entry is not an object")
            fixes = vuln.get("fix_versions") or []
            if not isinstance(fixes, list):
                raise ValueError("pip-audit fix_versions is not a list")
            title = f"fixed in {', '.join(map(str, fixes))}" if fixes else "no fixed release"
            records.append(
                VulnerabilityRecord(
                    package=str(dep.get("name", "?")),
                    severity=map_severity(vuln.get("severity", "unknown")),
                    title=title,
                    identifier=str(vuln.get("id", "")),
                    version=str(dep.get("version", "")),
                )
            )
    return records


def parse_cargo_audit(text: str) -> List[VulnerabilityRecord]:
    """Parse ``cargo audit --json``."""
    data = _load_json(text, "cargo audit")
    vulns = data.get("vulnerabilities") if isinstance(data, dict) else None
    if not isinstance(vulns, dict):
        raise ValueError("cargo audit output has no vulnerabilities section")
    items = vulns.get("list") or []
    if not isinstance(items, list):
        raise ValueError("cargo audit vulnerability list is not a list")
    records = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError("cargo audit vulnerability entry is not an object")
        advisory = item.get("advisory") or {}
        package = item.get("package") or {}
        if not isinstance(advisory, dict) or not isinstance(package, dict):
            raise ValueError("cargo audit advisory or package is not an object")
        records.append(
            VulnerabilityRecord(
                package=str(package.get("name") or advisory.get("package", "?")),
                severity=map_severity(_cargo_severity(advisory)),
                title=str(advisory.get("title", "advisory")),
                identifier=str(advisory.get("id", "")),
                version=str(package.get("version", "")),
            )
        )
    return records


def _cargo_severity(advisory: Dict[str, Any]) -> Any:
    # RustSec carries a CVSS vector, not a score; "informational" marks notices.
    if advisory.get("informational"):
        return "informational"
    return advisory.get("severity") or "unknown"
