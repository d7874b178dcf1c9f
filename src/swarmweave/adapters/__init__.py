"""Concrete worker invokers."""

from swarmweave.adapters.subprocess_worker import SubprocessWorkerInvoker, terminate_process

__all__ = ["SubprocessWorkerInvoker", "terminate_process"]
