"""
Bounded-concurrency FIFO worker pool for import jobs.

Accepting a commit only enqueues the job id; the pool threads drain the
queue in arrival order and run the handler for each id.
"""
import logging
import queue
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

_STOP = object()


class ImportWorkerPool:
    def __init__(self, handler: Callable[[str], object], concurrency: int = 1, name: str = "lead-import"):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.handler = handler
        self.concurrency = concurrency
        self.name = name
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def running(self) -> bool:
        return bool(self._threads) and not self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        with self._lock:
            if self._threads:
                return
            if self.concurrency > 1:
                logger.warning(
                    "Import concurrency is %d; enquiry numbers are allocated per job and may collide "
                    "across concurrent imports",
                    self.concurrency,
                )
            for index in range(self.concurrency):
                thread = threading.Thread(target=self._work, name=f"{self.name}-{index + 1}", daemon=True)
                thread.start()
                self._threads.append(thread)
        logger.info("Started %d %s worker(s)", self.concurrency, self.name)

    def enqueue(self, job_id: str) -> None:
        if self._closed:
            raise RuntimeError("Worker pool is shut down")
        self._queue.put(job_id)
        logger.info("Queued import job %s (%d waiting)", job_id, self._queue.qsize())

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.handler(item)
            except Exception:
                logger.exception("Unhandled error while running import job %s", item)
            finally:
                self._queue.task_done()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued job has been handled. Returns False on timeout."""
        if timeout is None:
            self._queue.join()
            return True
        deadline = threading.Event()
        waiter = threading.Thread(target=lambda: (self._queue.join(), deadline.set()), daemon=True)
        waiter.start()
        return deadline.wait(timeout)

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Stop accepting jobs; workers exit after the jobs already queued."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            threads = list(self._threads)
        for _ in threads:
            self._queue.put(_STOP)
        if wait:
            for thread in threads:
                thread.join(timeout)
        logger.info("Stopped %s workers", self.name)
