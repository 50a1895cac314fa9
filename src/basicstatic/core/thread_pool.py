"""
=============================================================================
THREAD POOL
=============================================================================

One task per accepted connection; a worker keeps the task for as long as
the connection stays alive (keep-alive loop, file streaming).

    accept loop ──submit()──► [ bounded queue ] ──get()──► Worker-0
                                                  ──get()──► Worker-1
                                                  ──get()──► ...

    min_workers threads start with the pool. When every worker is busy and
    work is waiting, one more is added, up to max_workers.

    A full queue makes submit() return False. The caller answers 503
    instead of letting the backlog grow without bound.

File serving is I/O bound (disk reads, socket writes), both of which
release the GIL, so plain threads give real concurrency here.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any, List
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A callable queued for a worker, with when it was submitted."""
    func: Callable[..., Any]
    args: tuple = ()
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Daemon thread pulling tasks until it receives the None sentinel.

    An exception escaping a task is logged; the worker lives on.
    """

    def __init__(self, task_queue: queue.Queue, worker_id: int, poll_interval: float = 1.0):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.poll_interval = poll_interval
        self.state = WorkerState.IDLE
        self._stop_event = threading.Event()

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")
        while not self._stop_event.is_set():
            try:
                task = self.task_queue.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            try:
                if task is None:
                    break
                self._execute(task)
            finally:
                self.task_queue.task_done()
        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, task: Task):
        self.state = WorkerState.BUSY
        waited = time.time() - task.submitted_at
        try:
            task.func(*task.args)
        except Exception as e:
            logger.exception(f"Worker {self.worker_id} task failed (queued {waited:.3f}s): {e}")
        finally:
            self.state = WorkerState.IDLE

    def stop(self):
        self._stop_event.set()


class ThreadPool:
    """
    Fixed-floor, bounded-ceiling pool of worker threads.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=16)
        pool.start()
        if not pool.submit(handle_connection, conn):
            reject(conn)
        pool.shutdown()
    """

    def __init__(self, min_workers: int = 4, max_workers: int = 16, queue_size: int = 100):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self._task_queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutting_down = False
        self._next_worker_id = 0

    def start(self):
        if self._started:
            return
        logger.info(f"Starting thread pool with {self.min_workers} workers")
        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()
        self._started = True
        self._shutting_down = False

    def _add_worker(self) -> Worker:
        # Caller holds self._lock
        worker = Worker(self._task_queue, self._next_worker_id)
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, func: Callable[..., Any], *args: Any) -> bool:
        """
        Queue func(*args) without blocking.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: Pool not started or shutting down.
        """
        if not self._started or self._shutting_down:
            raise RuntimeError("Thread pool is not accepting tasks")

        try:
            self._task_queue.put(Task(func=func, args=args), block=False)
        except queue.Full:
            logger.warning(f"Task queue full ({self._task_queue.maxsize} waiting)")
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            if self.busy_workers == len(self._workers) and not self._task_queue.empty():
                logger.debug(f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers")
                self._add_worker()

    def shutdown(self, timeout: float = 5.0):
        """
        Stop all workers.

        Queued tasks get up to `timeout` seconds to drain; workers still
        busy after that are abandoned (they are daemon threads).
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutting_down = True

        deadline = time.time() + timeout
        while not self._task_queue.empty() and time.time() < deadline:
            time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()

        for worker in workers:
            worker.stop()
            try:
                self._task_queue.put_nowait(None)  # wake an idle worker
            except queue.Full:
                pass
        for worker in workers:
            worker.join(timeout=max(0.1, deadline - time.time()))

        self._started = False
        logger.info("Thread pool shutdown complete")

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def worker_count(self) -> int:
        return len(self._workers)
