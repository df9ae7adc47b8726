"""Structured payloads carried inside ``OperationResult.data``.

These are the output shapes of the external tool parsers; the aggregation
logic depends on nothing else about the tools.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class OutdatedDependency(BaseModel):
    name: str
    current: str
    latest: str
    kind: str = "Normal"  # "Normal" | "Development" | "Build"


class Vulnerability(BaseModel):
    id: str
    package: str
    version: str
    title: str
    description: str = ""
    severity: str = "unknown"
    url: str | None = None
    patched_versions: list[str] = Field(default_factory=list)


class AuditWarning(BaseModel):
    kind: str  # unmaintained | unsound | yanked
    package: str
    version: str
    title: str
    advisory_id: str = ""
    url: str | None = None


class AuditReport(BaseModel):
    vulnerabilities: list[Vulnerability] = Field(default_factory=list)
    warnings: list[AuditWarning] = Field(default_factory=list)


class LicenseEntry(BaseModel):
    name: str
    version: str
    license: str = "Unknown"
    authors: str | None = None
    repository: str | None = None


class ToolchainInfo(BaseModel):
    toolchain: str | None = None
    channel: str | None = None
    msrv: str | None = None


class ManifestDependency(BaseModel):
    name: str
    version: str
    section: str = "dependencies"


class CommandResult(BaseModel):
    """Buffered outcome of one external command."""

    project_path: str
    command: str
    args: list[str] = Field(default_factory=list)
    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    duration_ms: int = 0


class CleanResult(BaseModel):
    freed_bytes: int = 0
    removed: str | None = None  # path that was deleted, None when nothing existed
