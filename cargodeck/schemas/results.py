"""Generic per-project result envelope."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, model_validator

T = TypeVar("T")


def project_name_for(project_path: str) -> str:
    """Display name for a project: its directory name, or the path itself."""
    return Path(project_path).name or project_path


class OperationResult(BaseModel, Generic[T]):
    """Outcome of one unit of work against one project.

    ``success`` holds exactly when ``data`` is present and ``error`` is absent.
    """

    model_config = ConfigDict(frozen=True)

    project_path: str
    project_name: str
    success: bool
    data: T | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _check_envelope(self) -> OperationResult[T]:
        if self.success:
            if self.data is None or self.error is not None:
                raise ValueError("successful result needs data and no error")
        else:
            if self.error is None:
                raise ValueError("failed result needs an error message")
            if self.data is not None:
                raise ValueError("failed result must not carry data")
        return self

    @classmethod
    def ok(cls, project_path: str, data: Any, project_name: str | None = None) -> OperationResult:
        return cls(
            project_path=project_path,
            project_name=project_name or project_name_for(project_path),
            success=True,
            data=data,
        )

    @classmethod
    def fail(
        cls, project_path: str, error: str, project_name: str | None = None
    ) -> OperationResult:
        return cls(
            project_path=project_path,
            project_name=project_name or project_name_for(project_path),
            success=False,
            error=error or "unknown error",
        )
