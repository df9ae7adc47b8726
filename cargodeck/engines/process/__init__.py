"""Process runner engine — buffered and streaming external command execution."""

from cargodeck.engines.process.models import Completion, OutputLine, StreamEvent
from cargodeck.engines.process.runner import ProcessRunner

__all__ = ["Completion", "OutputLine", "ProcessRunner", "StreamEvent"]
