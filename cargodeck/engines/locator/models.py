"""Data models for the project locator engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class ProjectDescriptor:
    """One discovered project. Identity is ``path``."""

    path: str
    name: str
    target_size: int = 0
    dep_count: int = 0
    last_modified: int = 0  # unix seconds
    is_workspace_member: bool = False
    workspace_root: str | None = None

    def __post_init__(self) -> None:
        if self.is_workspace_member and self.workspace_root is None:
            raise ValueError(f"workspace member {self.path} has no workspace_root")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
