"""Process pool with a pipe-based request/response protocol.

    request:  {"type": <task type>, "id": <int>, "payload": <any>}
    response: {"type": "result", "id": ..., "data": ...}
              {"type": "error",  "id": ..., "error": "<message>"}
              {"type": "log",    "id": ..., "level": "warning", "message": ...}

One dispatcher thread owns all scheduling state: the FIFO of pending tasks,
the in-flight map of every worker and the worker list itself. Callers only
push onto a thread-safe submission queue and get a Future back. Each task
goes to the worker with the fewest tasks in flight. A worker whose process
dies is respawned and its in-flight tasks are queued again.
"""
from __future__ import annotations

import importlib
import itertools
import logging
import multiprocessing
import os
import pickle
import queue
import threading
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from multiprocessing.connection import Connection, wait
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional

from logslim.config import WorkerConfig
from logslim.exceptions import WorkerCrashedError, WorkerPoolClosedError, WorkerTaskError

logger = logging.getLogger(__name__)

DEFAULT_HANDLERS: Dict[str, str] = {
    "compute_signatures": "logslim.workers.tasks:compute_signatures",
    "ping": "logslim.workers.tasks:ping",
}

_POLL_INTERVAL = 0.05
_STOP = object()


def _resolve(path: str) -> Callable[[Any], Any]:
    module_name, _, attr = path.partition(":")
    return getattr(importlib.import_module(module_name), attr)


def worker_main(conn: Connection, handlers: Mapping[str, str]) -> None:
    """Worker process loop: one request at a time until None or EOF."""
    resolved: Dict[str, Callable[[Any], Any]] = {}
    while True:
        try:
            msg = conn.recv()
        except (EOFError, OSError, KeyboardInterrupt):
            break
        if msg is None:
            break
        task_type = msg.get("type")
        task_id = msg.get("id")
        if task_type not in handlers:
            conn.send({"type": "log", "id": task_id, "level": "warning",
                       "message": f"ignoring unknown request type {task_type!r}"})
            continue
        try:
            fn = resolved.get(task_type)
            if fn is None:
                fn = resolved[task_type] = _resolve(handlers[task_type])
            conn.send({"type": "result", "id": task_id, "data": fn(msg.get("payload"))})
        except Exception as exc:
            conn.send({"type": "error", "id": task_id, "error": f"{type(exc).__name__}: {exc}"})
    conn.close()


@dataclass
class _Task:
    id: int
    type: str
    payload: Any
    future: Future
    attempts: int = 0


class _Worker:
    def __init__(self, index: int, ctx: Any, handlers: Mapping[str, str]) -> None:
        self.index = index
        parent, child = ctx.Pipe()
        self.process = ctx.Process(
            target=worker_main, args=(child, dict(handlers)),
            name=f"logslim-worker-{index}", daemon=True,
        )
        self.process.start()
        child.close()
        self.conn: Connection = parent
        self.inflight: Dict[int, _Task] = {}

    @property
    def load(self) -> int:
        return len(self.inflight)

    def stop(self, timeout: float) -> None:
        try:
            self.conn.send(None)
        except (OSError, ValueError):
            pass  # already gone
        self.process.join(timeout)
        if self.process.is_alive():
            self.process.terminate()
            self.process.join(timeout)
        self.conn.close()


class WorkerPool:
    """Least-loaded process pool returning concurrent.futures.Future objects.

    Usage:
        with WorkerPool(size=2) as pool:
            fut = pool.run("ping", {"delay": 0.1})
            fut.result(timeout=5)
    """

    def __init__(
        self,
        size: Optional[int] = None,
        handlers: Optional[Mapping[str, str]] = None,
        mp_context: str = "spawn",
        max_inflight_per_worker: int = 2,
        max_retries: int = 1,
    ) -> None:
        self.size = size if size is not None else max(2, os.cpu_count() or 1)
        if self.size < 1:
            raise ValueError("size must be >= 1")
        self.handlers = dict(handlers if handlers is not None else DEFAULT_HANDLERS)
        self.max_inflight = max_inflight_per_worker
        self.max_retries = max_retries
        self._ctx = multiprocessing.get_context(mp_context)

        self._submissions: "queue.Queue[Any]" = queue.Queue()
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._closed = False
        self.counters: Dict[str, int] = {"submitted": 0, "completed": 0, "failed": 0, "respawned": 0}

        # dispatcher-owned state
        self._pending: Deque[_Task] = deque()
        self._workers: List[_Worker] = [_Worker(i, self._ctx, self.handlers) for i in range(self.size)]
        self._stopping = False

        self._thread = threading.Thread(target=self._dispatch_loop, name="logslim-dispatcher", daemon=True)
        self._thread.start()
        logger.info("worker pool started: %d workers (%s)", self.size, mp_context)

    @classmethod
    def from_config(cls, config: WorkerConfig) -> "WorkerPool":
        return cls(
            size=config.size,
            mp_context=config.mp_context,
            max_inflight_per_worker=config.max_inflight_per_worker,
            max_retries=config.max_retries,
        )

    # --- caller side ---

    def run(self, task_type: str, payload: Any = None) -> Future:
        if task_type not in self.handlers:
            raise ValueError(f"unknown task type {task_type!r}; known: {sorted(self.handlers)}")
        future: Future = Future()
        with self._lock:
            if self._closed:
                raise WorkerPoolClosedError("worker pool is closed")
            task = _Task(next(self._ids), task_type, payload, future)
            self.counters["submitted"] += 1
            self._submissions.put(task)
        return future

    def close(self, timeout: float = 5.0) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._submissions.put(_STOP)
        self._thread.join(timeout + 1.0)
        logger.info("worker pool closed")

    @property
    def closed(self) -> bool:
        return self._closed

    def worker_pids(self) -> List[Optional[int]]:
        return [w.process.pid for w in self._workers]

    def stats(self) -> Dict[str, int]:
        return {"size": self.size, **self.counters}

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # --- dispatcher thread ---

    def _dispatch_loop(self) -> None:
        while True:
            self._drain_submissions()
            if self._stopping:
                break
            self._assign()
            handles: Dict[Any, _Worker] = {}
            for worker in self._workers:
                handles[worker.conn] = worker
                handles[worker.process.sentinel] = worker
            for ready in wait(list(handles), timeout=_POLL_INTERVAL):
                worker = handles[ready]
                if worker not in self._workers:
                    continue  # replaced earlier in this round
                if ready is worker.conn:
                    if not self._read(worker):
                        self._respawn(worker)
                elif not worker.process.is_alive():
                    self._respawn(worker)
        self._shutdown()

    def _drain_submissions(self) -> None:
        while True:
            try:
                item = self._submissions.get_nowait()
            except queue.Empty:
                return
            if item is _STOP:
                self._stopping = True
            else:
                self._pending.append(item)

    def _assign(self) -> None:
        while self._pending:
            worker = min(self._workers, key=lambda w: w.load)
            if worker.load >= self.max_inflight:
                return
            task = self._pending.popleft()
            if task.attempts == 0 and not task.future.set_running_or_notify_cancel():
                continue
            try:
                worker.conn.send({"type": task.type, "id": task.id, "payload": task.payload})
            except (pickle.PicklingError, TypeError, AttributeError) as exc:
                self._fail(task, WorkerTaskError(f"payload for {task.type!r} is not picklable: {exc}"))
                continue
            except (OSError, ValueError):
                self._pending.appendleft(task)
                self._respawn(worker)
                continue
            task.attempts += 1
            worker.inflight[task.id] = task

    def _read(self, worker: _Worker) -> bool:
        """Handle every buffered response; False once the pipe is dead."""
        try:
            while worker.conn.poll():
                self._on_message(worker, worker.conn.recv())
        except (EOFError, OSError):
            return False
        return True

    def _on_message(self, worker: _Worker, msg: Any) -> None:
        kind = msg.get("type") if isinstance(msg, dict) else None
        if kind == "log":
            level = logging.getLevelName(str(msg.get("level", "info")).upper())
            logger.log(level if isinstance(level, int) else logging.INFO,
                       "worker %d: %s", worker.index, msg.get("message"))
            return
        if kind not in ("result", "error"):
            logger.warning("worker %d: ignoring unknown response type %r", worker.index, kind)
            return
        task = worker.inflight.pop(msg.get("id"), None)
        if task is None:
            logger.debug("worker %d: response for unknown task id %r", worker.index, msg.get("id"))
            return
        if kind == "result":
            self.counters["completed"] += 1
            task.future.set_result(msg.get("data"))
        else:
            self._fail(task, WorkerTaskError(str(msg.get("error"))))

    def _fail(self, task: _Task, exc: BaseException) -> None:
        self.counters["failed"] += 1
        if not task.future.done():
            task.future.set_exception(exc)

    def _respawn(self, worker: _Worker) -> None:
        self._read(worker)  # results written before the crash still count
        idx = self._workers.index(worker)
        orphans = list(worker.inflight.values())
        worker.inflight.clear()
        logger.warning("worker %d (pid %s) died with exit code %s; %d task(s) in flight",
                       worker.index, worker.process.pid, worker.process.exitcode, len(orphans))
        worker.stop(timeout=0.5)
        self._workers[idx] = _Worker(idx, self._ctx, self.handlers)
        self.counters["respawned"] += 1
        for task in reversed(orphans):
            if task.attempts > self.max_retries:
                self._fail(task, WorkerCrashedError(
                    f"task {task.id} ({task.type}) lost after {task.attempts} worker crash(es)"))
            else:
                self._pending.appendleft(task)

    def _shutdown(self) -> None:
        closed = WorkerPoolClosedError("worker pool closed before the task completed")
        while self._pending:
            self._fail(self._pending.popleft(), closed)
        for worker in self._workers:
            for task in worker.inflight.values():
                self._fail(task, closed)
            worker.inflight.clear()
            worker.stop(timeout=1.0)
