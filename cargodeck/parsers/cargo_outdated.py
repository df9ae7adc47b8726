"""Parser for ``cargo outdated --format json`` output."""

from __future__ import annotations

import json

from cargodeck.exceptions import ParseError
from cargodeck.schemas.payloads import OutdatedDependency


def parse_outdated_json(text: str) -> list[OutdatedDependency]:
    """Return only the dependencies whose current version differs from latest."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"JSON parse error: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("dependencies"), list):
        raise ParseError("JSON parse error: missing 'dependencies' list")

    deps: list[OutdatedDependency] = []
    for entry in data["dependencies"]:
        try:
            name = entry["name"]
            current = entry["project"]
            latest = entry["latest"]
        except (KeyError, TypeError) as exc:
            raise ParseError(f"JSON parse error: malformed dependency entry: {exc}") from exc
        if current == latest:
            continue
        deps.append(
            OutdatedDependency(
                name=name,
                current=current,
                latest=latest,
                kind=entry.get("kind") or "Normal",
            )
        )
    return deps
