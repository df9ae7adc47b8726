"""Parser for ``cargo license --json`` output."""

from __future__ import annotations

import json

from cargodeck.exceptions import ParseError
from cargodeck.schemas.payloads import LicenseEntry

# Licenses that may have problematic requirements for commercial use
PROBLEMATIC_LICENSES = (
    "GPL",
    "AGPL",
    "LGPL",
    "CC-BY-SA",
    "CC-BY-NC",
    "SSPL",
    "BSL",
    "BUSL",
    "Elastic",
    "Commons Clause",
)


def is_problematic_license(license_expr: str) -> bool:
    upper = license_expr.upper()
    return any(p.upper() in upper for p in PROBLEMATIC_LICENSES)


def parse_license_json(text: str) -> list[LicenseEntry]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"JSON parse error: {exc}") from exc
    if not isinstance(data, list):
        raise ParseError("JSON parse error: expected a list of packages")

    entries: list[LicenseEntry] = []
    for raw in data:
        try:
            entries.append(
                LicenseEntry(
                    name=raw["name"],
                    version=raw["version"],
                    license=raw.get("license") or "Unknown",
                    authors=raw.get("authors"),
                    repository=raw.get("repository"),
                )
            )
        except (KeyError, TypeError) as exc:
            raise ParseError(f"JSON parse error: malformed package entry: {exc}") from exc
    return entries
