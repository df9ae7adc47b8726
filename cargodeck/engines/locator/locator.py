"""Locate Cargo projects under a scan root."""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from cargodeck.engines.locator.models import ProjectDescriptor
from cargodeck.exceptions import InvalidRootError, ParseError
from cargodeck.parsers.manifest import MANIFEST_NAME, CargoManifest, load_manifest

log = structlog.get_logger("cargodeck.locator")

TARGET_DIR = "target"

# Directories never descended into
_SKIP_DIRS = frozenset(
    {
        TARGET_DIR,
        ".git",
        ".svn",
        ".hg",
        "node_modules",
        "__pycache__",
        ".venv",
        "venv",
        ".cargo",
        ".idea",
        ".vscode",
    }
)

# How deep under src/ to look for the newest modification
_SRC_MTIME_DEPTH = 3


def dir_size(path: Path) -> int:
    """Sum of regular file sizes under *path*; 0 when it does not exist."""
    if not path.is_dir():
        return 0
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            try:
                st = os.lstat(os.path.join(dirpath, name))
            except OSError:
                continue
            if stat.S_ISREG(st.st_mode):
                total += st.st_size
    return total


def last_modified(project_dir: Path) -> int:
    """Newest mtime (unix seconds) among the manifest, ``src/`` and its entries."""
    latest = 0.0
    src = project_dir / "src"
    for candidate in (src, project_dir / MANIFEST_NAME):
        try:
            latest = max(latest, candidate.stat().st_mtime)
        except OSError:
            continue

    if src.is_dir():
        base_depth = len(src.parts)
        for dirpath, dirnames, filenames in os.walk(src):
            depth = len(Path(dirpath).parts) - base_depth
            if depth >= _SRC_MTIME_DEPTH:
                dirnames[:] = []
            for name in dirnames + filenames:
                try:
                    latest = max(latest, os.stat(os.path.join(dirpath, name)).st_mtime)
                except OSError:
                    continue
    return int(latest)


@dataclass
class _WorkspaceRoot:
    path: Path
    members: set[Path] = field(default_factory=set)
    excluded: set[Path] = field(default_factory=set)


def _expand(root: Path, patterns: list[str]) -> set[Path]:
    """Resolve workspace member/exclude entries (literal or glob) under *root*."""
    resolved: set[Path] = set()
    for pattern in patterns:
        try:
            if any(ch in pattern for ch in "*?["):
                base, rel = root, pattern
                if Path(pattern).is_absolute():
                    # Path.glob only takes relative patterns
                    anchor = Path(Path(pattern).anchor)
                    base, rel = anchor, str(Path(pattern).relative_to(anchor))
                resolved.update(p.resolve() for p in base.glob(rel) if p.is_dir())
            else:
                resolved.add((root / pattern).resolve())
        except (ValueError, NotImplementedError, OSError) as exc:
            log.warning(
                "locator.bad_member_pattern", root=str(root), pattern=pattern, error=str(exc)
            )
    return resolved


class ProjectLocator:
    """Walk a directory tree and describe every Cargo project found."""

    def __init__(self, max_depth: int = 4, skip_dirs: frozenset[str] = _SKIP_DIRS) -> None:
        self.max_depth = max_depth
        self.skip_dirs = skip_dirs

    def locate(self, root: str | Path) -> list[ProjectDescriptor]:
        """Return descriptors for every manifest under *root*.

        Raises :class:`InvalidRootError` if *root* is not an existing directory.
        Malformed manifests and unreadable subtrees never abort the scan.
        """
        root_path = Path(root).expanduser()
        if not root_path.exists():
            raise InvalidRootError(str(root), "does not exist")
        if not root_path.is_dir():
            raise InvalidRootError(str(root), "not a directory")
        root_path = root_path.resolve()

        manifests: dict[Path, CargoManifest | None] = {}
        for project_dir in self._walk(root_path):
            manifests[project_dir] = self._read_manifest(project_dir)

        workspaces = {
            d: _WorkspaceRoot(
                path=d,
                members=_expand(d, m.workspace_members),
                excluded=_expand(d, m.workspace_exclude),
            )
            for d, m in manifests.items()
            if m is not None and m.is_workspace_root
        }

        projects = [
            self._describe(project_dir, manifest, workspaces, root_path)
            for project_dir, manifest in manifests.items()
        ]
        projects.sort(key=lambda p: (p.name.lower(), p.path))
        log.info("locator.scan_complete", root=str(root_path), projects=len(projects))
        return projects

    # ── traversal ────────────────────────────────────────────────────────

    def _walk(self, root: Path) -> list[Path]:
        """Directories under *root* (inclusive) that hold a manifest."""

        def _on_error(exc: OSError) -> None:
            log.warning("locator.unreadable_dir", path=exc.filename, error=str(exc))

        found: list[Path] = []
        base_depth = len(root.parts)
        for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
            current = Path(dirpath)
            depth = len(current.parts) - base_depth
            dirnames[:] = sorted(d for d in dirnames if d not in self.skip_dirs)
            if depth >= self.max_depth:
                dirnames[:] = []
            if MANIFEST_NAME in filenames:
                found.append(current)
        return found

    @staticmethod
    def _read_manifest(project_dir: Path) -> CargoManifest | None:
        try:
            return load_manifest(project_dir)
        except (OSError, ParseError) as exc:
            log.warning("locator.manifest_unreadable", path=str(project_dir), error=str(exc))
            return None

    # ── description ──────────────────────────────────────────────────────

    def _describe(
        self,
        project_dir: Path,
        manifest: CargoManifest | None,
        workspaces: dict[Path, _WorkspaceRoot],
        scan_root: Path,
    ) -> ProjectDescriptor:
        name = project_dir.name
        dep_count = 0
        if manifest is not None:
            name = manifest.package_name or project_dir.name
            dep_count = manifest.dep_count

        workspace_root = self._find_workspace_root(project_dir, manifest, workspaces, scan_root)

        return ProjectDescriptor(
            path=str(project_dir),
            name=name,
            target_size=dir_size(project_dir / TARGET_DIR),
            dep_count=dep_count,
            last_modified=last_modified(project_dir),
            is_workspace_member=workspace_root is not None,
            workspace_root=str(workspace_root) if workspace_root is not None else None,
        )

    @staticmethod
    def _find_workspace_root(
        project_dir: Path,
        manifest: CargoManifest | None,
        workspaces: dict[Path, _WorkspaceRoot],
        scan_root: Path,
    ) -> Path | None:
        # Explicit ``package.workspace`` wins.
        if manifest is not None and manifest.package_workspace is not None:
            try:
                declared = (project_dir / manifest.package_workspace).resolve()
            except (ValueError, OSError) as exc:
                log.warning(
                    "locator.bad_workspace_path",
                    path=str(project_dir),
                    workspace=manifest.package_workspace,
                    error=str(exc),
                )
            else:
                if declared != project_dir:
                    return declared

        # Nearest enclosing workspace root that lists or contains this directory.
        for ancestor in project_dir.parents:
            ws = workspaces.get(ancestor)
            if ws is not None and project_dir not in ws.excluded:
                return ws.path
            if ancestor == scan_root:
                break

        # Members listed by a workspace that is not an ancestor (e.g. "../shared").
        for ws in workspaces.values():
            if ws.path != project_dir and project_dir in ws.members - ws.excluded:
                return ws.path
        return None
