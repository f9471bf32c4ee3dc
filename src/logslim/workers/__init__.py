"""Optional multi-process offload of MinHash computation."""
from logslim.workers.pool import DEFAULT_HANDLERS, WorkerPool, worker_main

__all__ = ["DEFAULT_HANDLERS", "WorkerPool", "worker_main"]
