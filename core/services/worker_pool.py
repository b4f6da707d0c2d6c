# Pool de workers acotado: rechaza explícitamente cuando la cola está llena

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from config.settings import settings
from core.domain.errors import PoolSaturatedError
from utils.metrics import get_metrics

logger = logging.getLogger(__name__)


class BoundedWorkerPool:
    """
    ThreadPoolExecutor con capacidad total = workers + cola.
    Si no hay lugar, submit() lanza PoolSaturatedError en vez de encolar.
    """

    def __init__(self, max_workers: int = None, queue_capacity: int = None):
        self.max_workers = max_workers or settings.workers.max_workers
        self.queue_capacity = (
            queue_capacity if queue_capacity is not None else settings.workers.queue_capacity
        )
        self.capacity = self.max_workers + self.queue_capacity
        self._slots = threading.BoundedSemaphore(self.capacity)
        self._in_flight = 0
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="query-worker"
        )

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def _update(self, delta: int):
        with self._lock:
            self._in_flight += delta
            get_metrics().set_pool_in_flight(self._in_flight)

    def _release(self, _future: Future):
        self._update(-1)
        self._slots.release()

    def submit(self, fn, *args, **kwargs) -> Future:
        if not self._slots.acquire(blocking=False):
            get_metrics().record_pool_rejection()
            logger.warning(f"Pool saturado: {self.capacity} tareas en curso")
            raise PoolSaturatedError(self.capacity)

        self._update(1)
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except RuntimeError:
            self._update(-1)
            self._slots.release()
            raise
        future.add_done_callback(self._release)
        return future

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)
