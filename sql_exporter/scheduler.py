"""Per-metric polling scheduler."""
import logging
import threading
import time
from typing import Callable, List, Optional, Sequence

from sql_exporter.config import MetricDefinition
from sql_exporter.errors import PollFailure
from sql_exporter.executor import QueryExecutor
from sql_exporter.self_metrics import SelfMetrics
from sql_exporter.store import MetricStore

logger = logging.getLogger(__name__)


class MetricTask:
    """
    Polls one metric on its own thread until cancelled.

    The first poll runs immediately, later polls run on interval boundaries
    measured from the task's start. Polls never overlap: ticks that come due
    while a poll is running are coalesced into a single pending trigger,
    which runs as soon as the poll returns. The dropped ticks are counted in
    ``skipped_ticks``.
    """

    def __init__(
        self,
        metric: MetricDefinition,
        poll: Callable[[MetricDefinition], bool],
        self_metrics: Optional[SelfMetrics] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.metric = metric
        self._poll = poll
        self._self_metrics = self_metrics
        self._clock = clock
        self._cancel = threading.Event()
        self._thread = threading.Thread(target=self.run, name=f"poll-{metric.name}", daemon=True)
        self.polls = 0
        self.skipped_ticks = 0

    def start(self):
        self._thread.start()

    def cancel(self):
        """Stop scheduling new polls; a poll in flight is left to finish."""
        self._cancel.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def run(self):
        interval = self.metric.interval
        start = self._clock()
        tick = 0

        while not self._cancel.is_set():
            try:
                self._poll(self.metric)
            except Exception as e:
                logger.error(f"Unexpected error polling metric {self.metric.name}: {e}", exc_info=True)
            self.polls += 1

            due = int((self._clock() - start) // interval)
            if due > tick:
                skipped = due - tick - 1
                if skipped:
                    self.skipped_ticks += skipped
                    logger.warning(
                        f"Metric {self.metric.name}: poll overran its {interval}s interval, "
                        f"skipped {skipped} tick(s)"
                    )
                    if self._self_metrics:
                        self._self_metrics.record_skipped_ticks(self.metric.name, skipped)
                tick = due
                continue

            tick += 1
            if self._cancel.wait(max(0.0, start + tick * interval - self._clock())):
                break

        logger.debug(f"Polling stopped for metric {self.metric.name}")


class Scheduler:
    """Owns one MetricTask per configured metric."""

    def __init__(
        self,
        metrics: Sequence[MetricDefinition],
        executor: QueryExecutor,
        store: MetricStore,
        self_metrics: Optional[SelfMetrics] = None,
    ):
        self.metrics = list(metrics)
        self.executor = executor
        self.store = store
        self.self_metrics = self_metrics
        self.tasks: List[MetricTask] = []

    def run_once(self, metric: MetricDefinition) -> bool:
        """Poll ``metric`` once and commit the result; return whether it succeeded."""
        poll_start = time.monotonic()
        try:
            series = self.executor.poll(metric)
        except PollFailure as e:
            logger.error(f"Error polling metric {metric.name}: {e}")
            if self.self_metrics:
                self.self_metrics.record_poll_error(metric.name, e.kind, time.monotonic() - poll_start)
            return False
        except Exception as e:
            logger.error(f"Unexpected error polling metric {metric.name}: {e}", exc_info=True)
            if self.self_metrics:
                self.self_metrics.record_poll_error(metric.name, "unexpected", time.monotonic() - poll_start)
            return False

        count = self.store.replace_family(metric.name, series)
        logger.debug(f"Updated metric {metric.name} with {count} time series")
        if self.self_metrics:
            self.self_metrics.record_poll(metric.name, time.monotonic() - poll_start, count)
        return True

    def start(self):
        """Launch one polling thread per metric."""
        if self.tasks:
            raise RuntimeError("Scheduler already started")

        for metric in self.metrics:
            task = MetricTask(metric, self.run_once, self.self_metrics)
            self.tasks.append(task)
            task.start()

        logger.info(f"Started polling {len(self.tasks)} metrics")

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Cancel every task and wait for their threads to exit.

        Polls already running are not interrupted. Returns False if some
        thread was still alive when ``timeout`` expired.
        """
        logger.info("Stopping scheduler")
        for task in self.tasks:
            task.cancel()

        deadline = None if timeout is None else time.monotonic() + timeout
        stopped = True
        for task in self.tasks:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if not task.join(remaining):
                logger.warning(f"Polling thread for metric {task.metric.name} still running a query")
                stopped = False
        return stopped
