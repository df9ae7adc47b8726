"""Parser for ``cargo audit --json`` output."""

from __future__ import annotations

import json
from typing import Any

from cargodeck.exceptions import ParseError
from cargodeck.schemas.payloads import AuditReport, AuditWarning, Vulnerability

_WARNING_KINDS = ("unmaintained", "unsound", "yanked")


def _vulnerability(raw: dict[str, Any]) -> Vulnerability:
    advisory = raw["advisory"]
    package = raw["package"]
    versions = raw.get("versions") or {}
    return Vulnerability(
        id=advisory["id"],
        package=package["name"],
        version=package["version"],
        title=advisory.get("title", ""),
        description=advisory.get("description", ""),
        severity=advisory.get("cvss") or "unknown",
        url=advisory.get("url"),
        patched_versions=list(versions.get("patched") or []),
    )


def _warning(raw: dict[str, Any], default_kind: str) -> AuditWarning:
    # Yanked crates carry no advisory.
    advisory = raw.get("advisory") or {}
    package = raw["package"]
    return AuditWarning(
        kind=raw.get("kind") or default_kind,
        package=package["name"],
        version=package["version"],
        title=advisory.get("title") or default_kind,
        advisory_id=advisory.get("id") or "",
        url=advisory.get("url"),
    )


def parse_audit_json(text: str) -> AuditReport:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"JSON parse error: {exc}") from exc

    try:
        vuln_list = data["vulnerabilities"]["list"]
        vulnerabilities = [_vulnerability(v) for v in vuln_list]

        warnings: list[AuditWarning] = []
        raw_warnings = data.get("warnings") or {}
        for kind in _WARNING_KINDS:
            for w in raw_warnings.get(kind) or []:
                warnings.append(_warning(w, kind))
    except (KeyError, TypeError) as exc:
        raise ParseError(f"JSON parse error: unexpected audit report shape: {exc}") from exc

    return AuditReport(vulnerabilities=vulnerabilities, warnings=warnings)
