import threading
import time

import pytest

from app.domain.imports.worker_pool import ImportWorkerPool


def test_jobs_run_in_fifo_order():
    seen = []
    pool = ImportWorkerPool(seen.append, concurrency=1)
    pool.start()
    for job_id in ["a", "b", "c", "d"]:
        pool.enqueue(job_id)

    assert pool.wait_until_idle(timeout=5)
    assert seen == ["a", "b", "c", "d"]
    pool.shutdown()


def test_handler_errors_do_not_stop_the_worker(caplog):
    seen = []

    def handler(job_id):
        if job_id == "bad":
            raise RuntimeError("boom")
        seen.append(job_id)

    pool = ImportWorkerPool(handler)
    pool.start()
    for job_id in ["first", "bad", "last"]:
        pool.enqueue(job_id)

    assert pool.wait_until_idle(timeout=5)
    assert seen == ["first", "last"]
    assert "Unhandled error while running import job bad" in caplog.text
    pool.shutdown()


def test_concurrency_is_bounded():
    active = []
    peak = []
    lock = threading.Lock()

    def handler(job_id):
        with lock:
            active.append(job_id)
            peak.append(len(active))
        time.sleep(0.02)
        with lock:
            active.remove(job_id)

    pool = ImportWorkerPool(handler, concurrency=2)
    pool.start()
    for index in range(8):
        pool.enqueue(str(index))

    assert pool.wait_until_idle(timeout=5)
    assert max(peak) <= 2
    pool.shutdown()


def test_concurrency_above_one_logs_a_warning(caplog):
    pool = ImportWorkerPool(lambda job_id: None, concurrency=3)
    pool.start()
    assert "may collide" in caplog.text
    pool.shutdown()


def test_wait_until_idle_times_out_while_busy():
    release = threading.Event()
    pool = ImportWorkerPool(lambda job_id: release.wait(5))
    pool.start()
    pool.enqueue("slow")

    assert pool.wait_until_idle(timeout=0.05) is False
    release.set()
    assert pool.wait_until_idle(timeout=5)
    pool.shutdown()


def test_enqueue_after_shutdown_is_rejected():
    pool = ImportWorkerPool(lambda job_id: None)
    pool.start()
    pool.shutdown()

    assert not pool.running
    with pytest.raises(RuntimeError):
        pool.enqueue("late")


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        ImportWorkerPool(lambda job_id: None, concurrency=0)
