"""Parser for Rust Cargo.toml manifests."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from cargodeck.exceptions import ParseError
from cargodeck.schemas.payloads import ManifestDependency

MANIFEST_NAME = "Cargo.toml"

_DEP_SECTIONS = ("dependencies", "dev-dependencies", "build-dependencies")


def _parse_version(spec: Any) -> str | None:
    """Extract version constraint from a dependency spec."""
    if isinstance(spec, str):
        return spec
    if isinstance(spec, dict):
        version = spec.get("version")
        return version if isinstance(version, str) else None
    return None


def _string_list(value: Any) -> list[str]:
    """String entries of a TOML array; anything else counts as empty."""
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


@dataclass
class CargoManifest:
    """The subset of a Cargo.toml the engine cares about."""

    package_name: str | None = None
    rust_version: str | None = None
    # ``package.workspace`` — explicit path to the owning workspace root
    package_workspace: str | None = None
    is_workspace_root: bool = False
    workspace_members: list[str] = field(default_factory=list)
    workspace_exclude: list[str] = field(default_factory=list)
    sections: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def dep_count(self) -> int:
        return len(self.sections.get("dependencies", {}))

    def dependencies(self) -> list[ManifestDependency]:
        """Versioned dependencies from all dependency sections.

        Path/git/workspace-inherited dependencies without a version string
        are skipped.
        """
        deps: list[ManifestDependency] = []
        for section in _DEP_SECTIONS:
            for name, spec in self.sections.get(section, {}).items():
                version = _parse_version(spec)
                if version is None:
                    continue
                deps.append(ManifestDependency(name=name, version=version, section=section))
        return deps


def parse_manifest(content: str) -> CargoManifest:
    """Parse Cargo.toml text. Raises :class:`ParseError` on invalid TOML."""
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        raise ParseError(f"invalid {MANIFEST_NAME}: {exc}") from exc

    manifest = CargoManifest()

    package = data.get("package")
    if isinstance(package, dict):
        name = package.get("name")
        manifest.package_name = name if isinstance(name, str) else None
        rust_version = package.get("rust-version")
        if isinstance(rust_version, str):
            manifest.rust_version = rust_version
        ws = package.get("workspace")
        if isinstance(ws, str):
            manifest.package_workspace = ws

    workspace = data.get("workspace")
    if isinstance(workspace, dict):
        manifest.is_workspace_root = True
        manifest.workspace_members = _string_list(workspace.get("members"))
        manifest.workspace_exclude = _string_list(workspace.get("exclude"))

    for section in _DEP_SECTIONS:
        table = data.get(section)
        if isinstance(table, dict):
            manifest.sections[section] = table

    return manifest


def load_manifest(project_dir: Path) -> CargoManifest:
    """Read and parse ``<project_dir>/Cargo.toml``.

    Raises ``OSError`` when unreadable and :class:`ParseError` when malformed.
    """
    content = (project_dir / MANIFEST_NAME).read_text(encoding="utf-8", errors="replace")
    return parse_manifest(content)
