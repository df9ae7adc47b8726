"""Pydantic schemas shared by the engines, the cache and the CLI."""

from cargodeck.schemas.payloads import (
    AuditReport,
    AuditWarning,
    CleanResult,
    CommandResult,
    LicenseEntry,
    ManifestDependency,
    OutdatedDependency,
    ToolchainInfo,
    Vulnerability,
)
from cargodeck.schemas.reports import (
    AuditSummary,
    DependencyAnalysis,
    ItemGroup,
    LicenseAnalysis,
    LicenseGroup,
    OutdatedSummary,
    ProjectError,
    ToolchainAnalysis,
    ToolchainEntry,
    ValueGroup,
)
from cargodeck.schemas.results import OperationResult, project_name_for

__all__ = [
    "AuditReport",
    "AuditSummary",
    "AuditWarning",
    "CleanResult",
    "CommandResult",
    "DependencyAnalysis",
    "ItemGroup",
    "LicenseAnalysis",
    "LicenseEntry",
    "LicenseGroup",
    "ManifestDependency",
    "OperationResult",
    "OutdatedDependency",
    "OutdatedSummary",
    "ProjectError",
    "ToolchainAnalysis",
    "ToolchainEntry",
    "ToolchainInfo",
    "ValueGroup",
    "Vulnerability",
    "project_name_for",
]
