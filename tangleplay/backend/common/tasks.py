"""Background work for lookups, IPC connects, exit waits and subtitle downloads."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, Future
from dataclasses import dataclass, field
from typing import Callable, Any, Optional
import threading
import time

from tangleplay.backend.common.errors import TaskError
from tangleplay.backend.common.logging import get_logger

log = get_logger(__name__)


@dataclass
class TaskSpec:
    fn: Callable[..., Any]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    retries: int = 0
    backoff_sec: float = 0.5
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    name: str = "task"


def run_with_retries(spec: TaskSpec, *, sleep: Callable[[float], None] = time.sleep) -> Any:
    """Call ``spec.fn``; on a ``retry_on`` failure wait ``backoff_sec * 2**attempt`` and try again."""

    attempt = 0
    while True:
        try:
            log.debug("task_start", extra={"task": spec.name, "attempt": attempt})
            result = spec.fn(*spec.args, **spec.kwargs)
        except Exception as exc:  # noqa: BLE001
            if attempt >= spec.retries or not isinstance(exc, spec.retry_on):
                log.debug("task_fail", extra={"task": spec.name, "attempt": attempt, "error": str(exc)})
                raise
            delay = spec.backoff_sec * (2 ** attempt)
            log.warning(
                "task_retry",
                extra={"task": spec.name, "attempt": attempt, "sleep_for": delay, "error": str(exc)},
            )
            sleep(delay)
            attempt += 1
            continue
        log.debug("task_done", extra={"task": spec.name, "attempt": attempt})
        return result


class TaskRunner:
    """Small thread pool; each owner (wizard, session) closes its own."""

    def __init__(self, max_workers: int = 4, *, context: Optional[str] = None):
        self._context = context or "task_runner"
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers),
            thread_name_prefix=f"tangleplay-{self._context}",
        )
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, spec: TaskSpec) -> Future:
        with self._lock:
            if self._closed:
                raise TaskError(f"{self._context} is closed; dropped task {spec.name}")
            return self._executor.submit(run_with_retries, spec)

    def close(self, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        # Running tasks may call submit() while shutdown waits on them.
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    def __enter__(self) -> "TaskRunner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close(wait=True)
