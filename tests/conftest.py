"""Shared pytest fixtures for cargodeck tests."""

from __future__ import annotations

import stat
import sys
import textwrap
from pathlib import Path

import pytest

from cargodeck.cache.store import MemoryStore
from cargodeck.core.config import Settings
from cargodeck.core.logging import setup_logging
from cargodeck.workspace import Workspace

# Stand-in for ``cargo``. A ``.fake-cargo`` file in the project directory
# selects per-project behaviour.
_FAKE_CARGO = '''
import json
import os
import sys
import time

args = sys.argv[1:]
cmd = args[0] if args else ""
marker = os.path.join(os.getcwd(), ".fake-cargo")
mode = open(marker).read().strip() if os.path.exists(marker) else ""

if mode == "missing-plugin" and cmd in ("outdated", "audit", "license"):
    sys.stderr.write(f"error: no such command: `{cmd}`\\n")
    sys.exit(101)

if cmd == "outdated":
    print(json.dumps({"dependencies": [
        {"name": "serde", "project": "1.0.150", "latest": "1.0.160", "kind": "Normal"},
        {"name": "log", "project": "0.4.20", "latest": "0.4.20", "kind": "Normal"},
    ]}))
elif cmd == "audit":
    vulns = []
    if mode == "vulnerable":
        vulns.append({
            "advisory": {"id": "RUSTSEC-2023-0001", "title": "Bad thing", "cvss": "high",
                         "url": "https://rustsec.org/advisories/RUSTSEC-2023-0001"},
            "package": {"name": "tokio", "version": "1.0.0"},
            "versions": {"patched": [">=1.18.4"]},
        })
    print(json.dumps({"vulnerabilities": {"found": bool(vulns), "list": vulns},
                      "warnings": {"yanked": [{"package": {"name": "foo", "version": "0.1.0"}}]}}))
    sys.exit(1 if vulns else 0)
elif cmd == "license":
    print(json.dumps([
        {"name": "serde", "version": "1.0.160", "license": "MIT OR Apache-2.0"},
        {"name": "readline", "version": "0.1.0", "license": "GPL-3.0"},
    ]))
elif cmd == "lines":
    for i in range(int(args[1])):
        print(f"line {i}", flush=True)
        time.sleep(float(args[2]) if len(args) > 2 else 0)
elif cmd == "sleep":
    time.sleep(float(args[1]))
elif cmd == "fail":
    sys.stderr.write("error: boom\\n")
    sys.exit(2)
else:
    print(" ".join(args))
'''


@pytest.fixture(autouse=True, scope="session")
def _quiet_logging():
    # structlog through stdlib handlers on stderr
    setup_logging("WARNING")


@pytest.fixture
def fake_cargo(tmp_path: Path) -> str:
    """Path to an executable that behaves like the cargo subcommands we call."""
    script = tmp_path / "fake-cargo"
    script.write_text(f"#!{sys.executable}\n" + textwrap.dedent(_FAKE_CARGO))
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(script)


def _make_project(
    parent: Path,
    dirname: str,
    manifest: str | None = None,
    mode: str | None = None,
) -> Path:
    """Create ``parent/dirname`` with a Cargo.toml (default: a minimal package)."""
    project = parent / dirname
    project.mkdir(parents=True, exist_ok=True)
    if manifest is None:
        manifest = f'[package]\nname = "{dirname}"\nversion = "0.1.0"\n'
    (project / "Cargo.toml").write_text(manifest)
    if mode is not None:
        (project / ".fake-cargo").write_text(mode)
    return project


@pytest.fixture
def make_project():
    return _make_project


@pytest.fixture
def settings(tmp_path: Path, fake_cargo: str) -> Settings:
    return Settings(
        max_concurrency=2,
        terminate_grace=1.0,
        cargo=fake_cargo,
        home=tmp_path / "home",
    )


@pytest.fixture
def workspace(settings: Settings) -> Workspace:
    return Workspace(settings, store=MemoryStore())
