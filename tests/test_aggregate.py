"""Tests for the cross-project aggregate reports."""

from __future__ import annotations

from cargodeck.engines.analysis import (
    analyze_dependencies,
    analyze_licenses,
    analyze_toolchains,
    group_items,
    mismatch_count,
    summarize_audit,
    summarize_outdated,
)
from cargodeck.schemas.payloads import (
    AuditReport,
    AuditWarning,
    LicenseEntry,
    ManifestDependency,
    OutdatedDependency,
    ToolchainInfo,
    Vulnerability,
)
from cargodeck.schemas.results import OperationResult

# ── helpers ──────────────────────────────────────────────────────────────


def _deps(path: str, **versions: str) -> OperationResult:
    return OperationResult.ok(
        path, [ManifestDependency(name=name, version=v) for name, v in versions.items()]
    )


def _vuln(severity: str) -> Vulnerability:
    return Vulnerability(
        id="RUSTSEC-0000-0000", package="x", version="1", title="t", severity=severity
    )


# ── dependency versions ──────────────────────────────────────────────────


class TestDependencies:
    def test_serde_mismatch_across_three_projects(self):
        results = [
            _deps("/w/a", serde="1.0.150", log="0.4"),
            _deps("/w/b", serde="1.0.150"),
            _deps("/w/c", serde="1.0.160", log="0.4"),
        ]
        report = analyze_dependencies(results)

        assert report.total_unique_deps == 2
        assert report.deps_with_mismatches == 1
        (serde,) = report.mismatches
        assert serde.name == "serde"
        assert [(v.value, len(v.projects)) for v in serde.versions] == [
            ("1.0.150", 2),
            ("1.0.160", 1),
        ]
        assert serde.versions[0].projects == ["a", "b"]

    def test_single_version_never_a_mismatch(self):
        report = analyze_dependencies([_deps("/w/a", tokio="1"), _deps("/w/b", tokio="1")])
        assert report.deps_with_mismatches == 0
        assert report.dependencies[0].project_count == 2

    def test_failed_results_become_errors(self):
        report = analyze_dependencies(
            [_deps("/w/a", serde="1"), OperationResult.fail("/w/b", "invalid Cargo.toml")]
        )
        assert report.total_unique_deps == 1
        assert [(e.project_name, e.error) for e in report.errors] == [("b", "invalid Cargo.toml")]

    def test_empty(self):
        report = analyze_dependencies([])
        assert report.dependencies == []
        assert report.total_unique_deps == 0

    def test_group_ordering(self):
        results = [
            _deps("/w/a", zlib="1", anyhow="1", serde="1"),
            _deps("/w/b", zlib="1", serde="1"),
        ]
        groups = analyze_dependencies(results).dependencies
        assert [g.name for g in groups] == ["serde", "zlib", "anyhow"]


class TestGroupItems:
    def test_same_item_twice_in_one_project_counts_once(self):
        results = [OperationResult.ok("/w/a", [("x", "1"), ("x", "1")])]
        (group,) = group_items(results, lambda items: items)
        assert group.versions[0].projects == ["a"]
        assert group.project_count == 1

    def test_project_with_two_versions_counted_once(self):
        results = [
            OperationResult.ok("/w/a", [("x", "1"), ("x", "2")]),
            OperationResult.ok("/w/b", [("x", "1")]),
        ]
        (group,) = group_items(results, lambda items: items)
        assert group.project_count == 2
        assert mismatch_count([group]) == 1


# ── toolchains ───────────────────────────────────────────────────────────


class TestToolchains:
    def test_mismatched_toolchains(self):
        results = [
            OperationResult.ok("/w/a", ToolchainInfo(toolchain="stable", msrv="1.70")),
            OperationResult.ok("/w/b", ToolchainInfo(toolchain="nightly", msrv="1.70")),
            OperationResult.ok("/w/c", ToolchainInfo()),
        ]
        report = analyze_toolchains(results)
        assert report.has_mismatches
        assert [v.value for v in report.toolchain_groups] == ["nightly", "stable"]
        assert [(v.value, v.projects) for v in report.msrv_groups] == [("1.70", ["a", "b"])]
        assert len(report.projects) == 3

    def test_consistent(self):
        results = [
            OperationResult.ok("/w/a", ToolchainInfo(toolchain="stable")),
            OperationResult.ok("/w/b", ToolchainInfo(toolchain="stable")),
        ]
        assert not analyze_toolchains(results).has_mismatches


# ── licenses ─────────────────────────────────────────────────────────────


class TestLicenses:
    def test_groups_and_problematic_first(self):
        results = [
            OperationResult.ok(
                "/w/a",
                [
                    LicenseEntry(name="serde", version="1.0", license="MIT OR Apache-2.0"),
                    LicenseEntry(name="log", version="0.4", license="MIT OR Apache-2.0"),
                    LicenseEntry(name="gpl-thing", version="0.1", license="GPL-3.0"),
                ],
            ),
            OperationResult.ok(
                "/w/b",
                [
                    LicenseEntry(name="serde", version="1.0", license="MIT OR Apache-2.0"),
                    LicenseEntry(name="unicode-ident", version="1.0", license="Unicode-DFS-2016"),
                ],
            ),
            OperationResult.fail("/w/c", "cargo-license is not installed"),
        ]
        report = analyze_licenses(results)

        assert [g.license for g in report.license_groups] == [
            "GPL-3.0",
            "MIT OR Apache-2.0",
            "Unicode-DFS-2016",
        ]
        assert report.license_groups[1].packages == ["log@0.4", "serde@1.0"]
        assert report.total_packages == 4
        assert report.problematic_count == 1
        assert len(report.projects) == 3
        assert len(report.errors) == 1


# ── outdated / audit summaries ───────────────────────────────────────────


class TestSummaries:
    def test_outdated_summary(self):
        dep = OutdatedDependency(name="serde", current="1.0.150", latest="1.0.160")
        results = [
            OperationResult.ok("/w/a", [dep, dep]),
            OperationResult.ok("/w/b", []),
            OperationResult.fail("/w/c", "boom"),
        ]
        summary = summarize_outdated(results)
        assert summary.projects_checked == 2
        assert summary.projects_with_outdated == 1
        assert summary.total_outdated == 2
        assert summary.by_project == {"/w/a": 2, "/w/b": 0}
        assert len(summary.errors) == 1

    def test_audit_summary(self):
        warning = AuditWarning(kind="yanked", package="foo", version="0.1", title="yanked")
        results = [
            OperationResult.ok(
                "/w/a", AuditReport(vulnerabilities=[_vuln("high"), _vuln("unknown")])
            ),
            OperationResult.ok("/w/b", AuditReport(warnings=[warning])),
        ]
        summary = summarize_audit(results)
        assert summary.projects_checked == 2
        assert summary.vulnerable_projects == 1
        assert summary.total_vulnerabilities == 2
        assert summary.total_warnings == 1
        assert summary.by_severity == {"high": 1, "unknown": 1}
