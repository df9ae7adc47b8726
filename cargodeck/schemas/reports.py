"""Cross-project aggregate reports."""

from __future__ import annotations

from pydantic import BaseModel, Field

from cargodeck.schemas.payloads import LicenseEntry
from cargodeck.schemas.results import OperationResult


class ProjectError(BaseModel):
    """One entry of the error list shown beside a batch view."""

    project_path: str
    project_name: str
    error: str

    @classmethod
    def from_result(cls, result: OperationResult) -> ProjectError:
        return cls(
            project_path=result.project_path,
            project_name=result.project_name,
            error=result.error or "unknown error",
        )


class ValueGroup(BaseModel):
    """One distinct value of a name and the projects that use it."""

    value: str
    projects: list[str] = Field(default_factory=list)


class ItemGroup(BaseModel):
    """All distinct values observed for one name across a batch."""

    name: str
    versions: list[ValueGroup] = Field(default_factory=list)
    project_count: int = 0

    @property
    def is_mismatch(self) -> bool:
        return len(self.versions) > 1


class DependencyAnalysis(BaseModel):
    dependencies: list[ItemGroup] = Field(default_factory=list)
    total_unique_deps: int = 0
    deps_with_mismatches: int = 0
    errors: list[ProjectError] = Field(default_factory=list)

    @property
    def mismatches(self) -> list[ItemGroup]:
        return [d for d in self.dependencies if d.is_mismatch]


class ToolchainEntry(BaseModel):
    project_path: str
    project_name: str
    toolchain: str | None = None
    channel: str | None = None
    msrv: str | None = None


class ToolchainAnalysis(BaseModel):
    projects: list[ToolchainEntry] = Field(default_factory=list)
    toolchain_groups: list[ValueGroup] = Field(default_factory=list)
    msrv_groups: list[ValueGroup] = Field(default_factory=list)
    has_mismatches: bool = False
    errors: list[ProjectError] = Field(default_factory=list)


class LicenseGroup(BaseModel):
    license: str
    packages: list[str] = Field(default_factory=list)
    is_problematic: bool = False


class LicenseAnalysis(BaseModel):
    projects: list[OperationResult[list[LicenseEntry]]] = Field(default_factory=list)
    license_groups: list[LicenseGroup] = Field(default_factory=list)
    total_packages: int = 0
    problematic_count: int = 0
    errors: list[ProjectError] = Field(default_factory=list)


class OutdatedSummary(BaseModel):
    projects_checked: int = 0
    projects_with_outdated: int = 0
    total_outdated: int = 0
    by_project: dict[str, int] = Field(default_factory=dict)
    errors: list[ProjectError] = Field(default_factory=list)


class AuditSummary(BaseModel):
    projects_checked: int = 0
    vulnerable_projects: int = 0
    total_vulnerabilities: int = 0
    total_warnings: int = 0
    by_severity: dict[str, int] = Field(default_factory=dict)
    errors: list[ProjectError] = Field(default_factory=list)
