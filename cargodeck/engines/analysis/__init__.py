"""Aggregate analyzer engine — reduce batch results into cross-project reports."""

from cargodeck.engines.analysis.aggregate import (
    analyze_dependencies,
    analyze_licenses,
    analyze_toolchains,
    group_items,
    mismatch_count,
    summarize_audit,
    summarize_outdated,
)

__all__ = [
    "analyze_dependencies",
    "analyze_licenses",
    "analyze_toolchains",
    "group_items",
    "mismatch_count",
    "summarize_audit",
    "summarize_outdated",
]
