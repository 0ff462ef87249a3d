"""Background outbox dispatcher thread."""
import logging
import threading
from typing import Callable, Optional

from suchak.application.services.conversation_engine import ConversationEngine, FlushResult


class OutboxDispatcher:
    """
    Flushes the engine's outbox on a fixed interval.

    Runs inside the web process so the engine stays the only writer of its
    conversations. ``wake()`` triggers an immediate flush; the engine calls
    it after every enqueue.
    """

    def __init__(
        self,
        engine: ConversationEngine,
        interval: float = 1.0,
        on_flush: Optional[Callable[[FlushResult], None]] = None,
    ):
        """
        Args:
            engine: Engine whose outbox is flushed
            interval: Seconds between flushes when nothing wakes the thread
            on_flush: Called with every FlushResult (metrics)
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.engine = engine
        self.interval = interval
        self.on_flush = on_flush
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thr: Optional[threading.Thread] = None
        self._logger = logging.getLogger(__name__)
        engine.add_enqueue_listener(self.wake)

    @property
    def running(self) -> bool:
        return bool(self._thr and self._thr.is_alive())

    def wake(self) -> None:
        self._wake.set()

    def run_once(self) -> FlushResult:
        """Flush the outbox once; transport errors are handled by the engine."""
        result = self.engine.flush_outbox()
        if self.on_flush is not None:
            self.on_flush(result)
        if result.attempted:
            self._logger.info(
                f"Outbox flush: attempted={result.attempted} sent={result.sent} "
                f"retrying={result.retrying} failed={result.failed}"
            )
        return result

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception as e:
                # keep the thread alive; entries stay queued for the next round
                self._logger.error(f"Outbox flush failed: {e}", exc_info=True)
            self._wake.wait(self.interval)
            self._wake.clear()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thr = threading.Thread(target=self._run, name="OutboxDispatcher", daemon=True)
        self._thr.start()
        self._logger.info(f"Outbox dispatcher started (interval {self.interval}s)")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        self._wake.set()
        if self._thr:
            self._thr.join(timeout=timeout)
            self._thr = None
        self._logger.info("Outbox dispatcher stopped")
