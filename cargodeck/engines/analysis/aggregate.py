"""Group per-project items by name and value across a batch.

Ordering is fixed so reports are reproducible: groups by distinct contributing
project count (descending) then name; value groups by project count
(descending) then value; project lists alphabetically.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from cargodeck.parsers.cargo_license import is_problematic_license
from cargodeck.schemas.payloads import (
    AuditReport,
    LicenseEntry,
    ManifestDependency,
    OutdatedDependency,
    ToolchainInfo,
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
from cargodeck.schemas.results import OperationResult

Extractor = Callable[[Any], Iterable[tuple[str, str]]]


def _errors(results: Sequence[OperationResult[Any]]) -> list[ProjectError]:
    return [ProjectError.from_result(r) for r in results if not r.success]


def group_items(results: Sequence[OperationResult[Any]], extract: Extractor) -> list[ItemGroup]:
    """Group ``(name, value)`` items from successful results.

    The same ``(name, value)`` reported twice by one project counts once.
    Failed results are ignored.
    """
    # name -> value -> project_path -> project_name
    seen: dict[str, dict[str, dict[str, str]]] = {}
    for result in results:
        if not result.success:
            continue
        for name, value in extract(result.data):
            by_value = seen.setdefault(name, {})
            by_value.setdefault(value, {}).setdefault(result.project_path, result.project_name)

    groups: list[ItemGroup] = []
    for name, by_value in seen.items():
        versions = [
            ValueGroup(value=value, projects=sorted(projects.values()))
            for value, projects in by_value.items()
        ]
        versions.sort(key=lambda v: (-len(v.projects), v.value))
        contributing = {path for projects in by_value.values() for path in projects}
        groups.append(ItemGroup(name=name, versions=versions, project_count=len(contributing)))

    groups.sort(key=lambda g: (-g.project_count, g.name))
    return groups


def mismatch_count(groups: Iterable[ItemGroup]) -> int:
    return sum(1 for g in groups if g.is_mismatch)


def _value_groups(
    results: Sequence[OperationResult[Any]], pick: Callable[[Any], str | None]
) -> list[ValueGroup]:
    def _extract(data: Any) -> Iterable[tuple[str, str]]:
        value = pick(data)
        return [("", value)] if value else []

    groups = group_items(results, _extract)
    return groups[0].versions if groups else []


# ── dependency versions ──────────────────────────────────────────────────


def analyze_dependencies(
    results: Sequence[OperationResult[list[ManifestDependency]]],
) -> DependencyAnalysis:
    groups = group_items(results, lambda deps: ((d.name, d.version) for d in deps))
    return DependencyAnalysis(
        dependencies=groups,
        total_unique_deps=len(groups),
        deps_with_mismatches=mismatch_count(groups),
        errors=_errors(results),
    )


# ── toolchains / MSRV ────────────────────────────────────────────────────


def analyze_toolchains(results: Sequence[OperationResult[ToolchainInfo]]) -> ToolchainAnalysis:
    projects = [
        ToolchainEntry(
            project_path=r.project_path,
            project_name=r.project_name,
            toolchain=r.data.toolchain,
            channel=r.data.channel,
            msrv=r.data.msrv,
        )
        for r in results
        if r.success
    ]
    toolchain_groups = _value_groups(results, lambda info: info.toolchain)
    msrv_groups = _value_groups(results, lambda info: info.msrv)
    return ToolchainAnalysis(
        projects=projects,
        toolchain_groups=toolchain_groups,
        msrv_groups=msrv_groups,
        has_mismatches=len(toolchain_groups) > 1 or len(msrv_groups) > 1,
        errors=_errors(results),
    )


# ── licenses ─────────────────────────────────────────────────────────────


def analyze_licenses(results: Sequence[OperationResult[list[LicenseEntry]]]) -> LicenseAnalysis:
    """Group packages (``name@version``) by license expression.

    Problematic licenses sort first, then larger groups, then license name.
    """
    packages_by_license: dict[str, set[str]] = {}
    for result in results:
        if not result.success:
            continue
        for entry in result.data:
            packages_by_license.setdefault(entry.license, set()).add(
                f"{entry.name}@{entry.version}"
            )

    license_groups = [
        LicenseGroup(
            license=license_expr,
            packages=sorted(packages),
            is_problematic=is_problematic_license(license_expr),
        )
        for license_expr, packages in packages_by_license.items()
    ]
    license_groups.sort(key=lambda g: (not g.is_problematic, -len(g.packages), g.license))

    return LicenseAnalysis(
        projects=[r.model_dump() for r in results],
        license_groups=license_groups,
        total_packages=sum(len(g.packages) for g in license_groups),
        problematic_count=sum(len(g.packages) for g in license_groups if g.is_problematic),
        errors=_errors(results),
    )


# ── outdated / audit summaries ───────────────────────────────────────────


def summarize_outdated(
    results: Sequence[OperationResult[list[OutdatedDependency]]],
) -> OutdatedSummary:
    by_project = {r.project_path: len(r.data) for r in results if r.success}
    return OutdatedSummary(
        projects_checked=len(by_project),
        projects_with_outdated=sum(1 for n in by_project.values() if n),
        total_outdated=sum(by_project.values()),
        by_project=by_project,
        errors=_errors(results),
    )


def summarize_audit(results: Sequence[OperationResult[AuditReport]]) -> AuditSummary:
    severities: Counter[str] = Counter()
    checked = vulnerable = warnings = 0
    for r in results:
        if not r.success:
            continue
        checked += 1
        if r.data.vulnerabilities:
            vulnerable += 1
        warnings += len(r.data.warnings)
        severities.update(v.severity for v in r.data.vulnerabilities)
    return AuditSummary(
        projects_checked=checked,
        vulnerable_projects=vulnerable,
        total_vulnerabilities=sum(severities.values()),
        total_warnings=warnings,
        by_severity=dict(severities),
        errors=_errors(results),
    )
