"""Batch executor engine — fan one operation out across many projects."""

from cargodeck.engines.batch.executor import BatchExecutor, Operation, failed_results
from cargodeck.engines.batch.operations import OperationKind, Operations

__all__ = ["BatchExecutor", "Operation", "OperationKind", "Operations", "failed_results"]
