"""Job registry — bookkeeping and cooperative cancellation of in-flight work."""

from cargodeck.engines.jobs.registry import BackgroundJob, CancelToken, JobRegistry

__all__ = ["BackgroundJob", "CancelToken", "JobRegistry"]
