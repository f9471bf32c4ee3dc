"""Tests for the process pool, its wire protocol and the hierarchical offload."""
import multiprocessing
import os
import signal
import threading
import time
from concurrent.futures import Future

import numpy as np
import pytest

from logslim.cache.lru import RunCaches
from logslim.cluster.engine import build_clusters
from logslim.cluster.hierarchical import HierarchicalStrategy
from logslim.config import CacheConfig, HierarchicalConfig
from logslim.events.segmenter import split_into_events
from logslim.exceptions import (
    PipelineTimeoutError,
    WorkerCrashedError,
    WorkerPoolClosedError,
    WorkerTaskError,
)
from logslim.workers.pool import DEFAULT_HANDLERS, WorkerPool, worker_main
from logslim.workers.tasks import compute_signatures


@pytest.fixture(scope="module")
def pool():
    with WorkerPool(size=2) as p:
        yield p


def _events(n):
    words = ["alpha", "beta", "gamma", "delta"]
    text = "\n".join(f"[svc] request {words[i % 4]} failed on shard {i}" for i in range(n))
    events = split_into_events(text)
    for i, e in enumerate(events):
        e.tag_order(i)
    return events


class TestProtocol:
    def test_worker_main_over_pipe(self):
        parent, child = multiprocessing.Pipe()
        thread = threading.Thread(target=worker_main, args=(child, DEFAULT_HANDLERS))
        thread.start()
        parent.send({"type": "bogus", "id": 1, "payload": None})
        reply = parent.recv()
        assert reply["type"] == "log" and reply["id"] == 1
        parent.send({"type": "ping", "id": 2, "payload": {}})
        reply = parent.recv()
        assert reply["type"] == "result" and reply["data"]["pong"] is True
        parent.send({"type": "compute_signatures", "id": 3, "payload": {}})
        reply = parent.recv()
        assert reply["type"] == "error" and "KeyError" in reply["error"]
        parent.send(None)
        thread.join(5)
        assert not thread.is_alive()

    def test_compute_signatures_task(self):
        sigs = compute_signatures({"texts": ["a b", ""], "num_perm": 10, "seed": 2})
        assert sigs.shape == (2, 10)
        assert sigs.dtype == np.uint64


class TestWorkerPool:
    def test_ping(self, pool):
        result = pool.run("ping").result(timeout=30)
        assert result["pong"] is True
        assert result["pid"] in pool.worker_pids()

    def test_many_tasks_spread(self, pool):
        futures = [pool.run("ping", {"delay": 0.05}) for _ in range(8)]
        pids = {f.result(timeout=30)["pid"] for f in futures}
        assert pids <= set(pool.worker_pids())

    def test_task_error_only_fails_that_task(self, pool):
        bad = pool.run("compute_signatures", {"num_perm": 4})
        good = pool.run("ping")
        with pytest.raises(WorkerTaskError, match="KeyError"):
            bad.result(timeout=30)
        assert good.result(timeout=30)["pong"]

    def test_unknown_task_type_rejected(self, pool):
        with pytest.raises(ValueError):
            pool.run("no_such_task")

    def test_unpicklable_payload(self, pool):
        fut = pool.run("ping", {"delay": lambda: 1})
        with pytest.raises(WorkerTaskError):
            fut.result(timeout=30)

    def test_signatures_match_inline(self, pool):
        texts = ["GET /a failed", "timeout on db", "GET /a failed"]
        payload = {"texts": texts, "num_perm": 100, "seed": 1}
        remote = pool.run("compute_signatures", payload).result(timeout=30)
        assert np.array_equal(remote, compute_signatures(payload))


class TestCrashRecovery:
    def test_crashed_worker_task_rerouted(self):
        with WorkerPool(size=1, max_retries=1) as pool:
            fut = pool.run("ping", {"delay": 3.0})
            time.sleep(0.5)
            os.kill(pool.worker_pids()[0], signal.SIGKILL)
            assert fut.result(timeout=60)["pong"] is True
            assert pool.stats()["respawned"] >= 1

    def test_retries_exhausted(self):
        with WorkerPool(size=1, max_retries=0) as pool:
            fut = pool.run("ping", {"delay": 3.0})
            time.sleep(0.5)
            os.kill(pool.worker_pids()[0], signal.SIGKILL)
            with pytest.raises(WorkerCrashedError):
                fut.result(timeout=60)

    def test_close_rejects_pending(self):
        pool = WorkerPool(size=1, max_inflight_per_worker=1)
        futures = [pool.run("ping", {"delay": 2.0}) for _ in range(3)]
        pool.close()
        for fut in futures:
            with pytest.raises(WorkerPoolClosedError):
                fut.result(timeout=10)
        with pytest.raises(WorkerPoolClosedError):
            pool.run("ping")


class TestHierarchicalOffload:
    def test_pool_matches_inline(self, pool):
        config = HierarchicalConfig(pool_batch_size=5)
        inline = build_clusters(_events(20), HierarchicalStrategy(config))
        strategy = HierarchicalStrategy(config, pool=pool)
        offloaded = build_clusters(_events(20), strategy, RunCaches.from_config(CacheConfig()))
        assert [[e.order for e in c.events] for c in offloaded] == [[e.order for e in c.events] for c in inline]
        assert strategy.stats()["pool_batches"] == 4

    def test_failed_batches_fall_back_inline(self):
        handlers = {"compute_signatures": "logslim.workers.tasks:does_not_exist"}
        with WorkerPool(size=1, handlers=handlers) as broken:
            strategy = HierarchicalStrategy(HierarchicalConfig(pool_batch_size=5), pool=broken)
            clusters = build_clusters(_events(12), strategy)
        assert sum(c.size for c in clusters) == 12
        assert strategy.stats()["fallback_batches"] == 3

    def test_timeout_cancels_queued_batches(self, manual_deadline):
        class StalledPool:
            closed = False

            def __init__(self):
                self.futures = []

            def run(self, task_type, payload=None):
                future = Future()
                self.futures.append(future)
                return future

        stalled = StalledPool()
        strategy = HierarchicalStrategy(HierarchicalConfig(pool_batch_size=1), pool=stalled)
        with pytest.raises(PipelineTimeoutError, match="signature batch 0:1"):
            strategy.compute_signatures(["a b", "c d", "e f"], manual_deadline(0.05, tick=0.0))
        assert len(stalled.futures) == 3
        assert all(f.cancelled() for f in stalled.futures)
