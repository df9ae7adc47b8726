"""Project locator engine — discover Cargo projects under a directory tree."""

from cargodeck.engines.locator.locator import ProjectLocator, dir_size
from cargodeck.engines.locator.models import ProjectDescriptor

__all__ = ["ProjectDescriptor", "ProjectLocator", "dir_size"]
