"""
worker.py - Runs each compression request in its own process.

The caller submits a request and reads a stream of messages back:

    ProgressEvent, ProgressEvent, ..., CompressionResult | CompressionFailure

Each request gets a fresh process and a fresh queue; nothing is shared
between requests. Cancelling terminates the process, which discards the
document graph with it.
"""

import logging
import multiprocessing
import queue
import time
from typing import Callable, Iterator, Optional, Union

from .exceptions import CompressionCancelled
from .models import CompressionRequest, ProgressEvent
from .pipeline import CompressionPipeline
from .results import CompressionFailure, CompressionOutcome, package_error

logger = logging.getLogger(__name__)

# spawn gives every request a clean interpreter
DEFAULT_START_METHOD = "spawn"

POLL_INTERVAL = 0.1     # seconds between liveness checks
DRAIN_TIMEOUT = 1.0     # wait for late messages after the worker exits
JOIN_TIMEOUT = 5.0

Message = Union[ProgressEvent, CompressionOutcome]


def _worker_main(request: CompressionRequest, channel) -> None:
    """Process entry point. Always ends by sending exactly one outcome."""
    try:
        pipeline = CompressionPipeline(request.options, progress_callback=channel.put)
        outcome = pipeline.run(request.document_bytes)
    except Exception as e:
        logger.error(f"Worker failed: {e}")
        outcome = package_error(f"Compression failed: {e}")
    channel.put(outcome)


class CompressionHandle:
    """
    Caller-side end of one running request.

    Iterate messages() (or call result()) to consume progress and the
    terminal outcome. cancel() stops the worker at any point.
    """

    def __init__(self, process, channel):
        self._process = process
        self._channel = channel
        self._finished = False
        self._cancelled = False
        self.outcome: Optional[CompressionOutcome] = None

    @property
    def done(self) -> bool:
        return self._finished

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid

    def messages(self, timeout: Optional[float] = None) -> Iterator[Message]:
        """
        Yield progress events, then the terminal outcome.

        Raises:
            TimeoutError: if *timeout* seconds pass without an outcome
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while not self._finished:
            if self._cancelled:
                return
            try:
                message = self._channel.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                if self._cancelled:
                    return
                if self._process.is_alive():
                    if deadline is not None and time.monotonic() >= deadline:
                        raise TimeoutError(f"No result after {timeout}s")
                    continue
                message = self._drain_after_exit()

            if self._cancelled:
                return
            if isinstance(message, ProgressEvent):
                yield message
                continue

            self._finish(message)
            yield message

    def result(
        self,
        timeout: Optional[float] = None,
        progress_callback: Optional[Callable[[ProgressEvent], None]] = None
    ) -> CompressionOutcome:
        """
        Block until the request ends.

        Raises:
            CompressionCancelled: if the request was cancelled
            TimeoutError: if *timeout* seconds pass without an outcome
        """
        for message in self.messages(timeout=timeout):
            if isinstance(message, ProgressEvent) and progress_callback:
                progress_callback(message)

        if self._cancelled:
            raise CompressionCancelled("Compression was canceled")
        return self.outcome

    def cancel(self) -> bool:
        """Terminate the worker. Returns False if the request already ended."""
        if self._finished or self._cancelled:
            return False

        self._cancelled = True
        if self._process.is_alive():
            self._process.terminate()
        self._process.join(JOIN_TIMEOUT)
        self._close_channel()
        logger.info(f"Compression worker {self._process.pid} cancelled")
        return True

    def _drain_after_exit(self) -> Message:
        # The worker flushes its queue before exiting; pick up what is left
        try:
            return self._channel.get(timeout=DRAIN_TIMEOUT)
        except queue.Empty:
            exitcode = self._process.exitcode
            logger.error(f"Compression worker exited without a result (exit code {exitcode})")
            return CompressionFailure(f"Worker exited unexpectedly (exit code {exitcode})")

    def _finish(self, outcome: CompressionOutcome):
        self._finished = True
        self.outcome = outcome
        self._process.join(JOIN_TIMEOUT)
        self._close_channel()

    def _close_channel(self):
        self._channel.close()
        self._channel.cancel_join_thread()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if not self._finished:
            self.cancel()


def submit(
    request: CompressionRequest,
    start_method: str = DEFAULT_START_METHOD
) -> CompressionHandle:
    """
    Start compressing *request* in a dedicated process.

    Returns:
        CompressionHandle for reading progress and the outcome
    """
    context = multiprocessing.get_context(start_method)
    channel = context.Queue()
    process = context.Process(
        target=_worker_main,
        args=(request, channel),
        name="pdf-compactor-worker",
        daemon=True,
    )
    process.start()
    logger.debug(f"Started compression worker {process.pid} for {request.original_size:,} bytes")
    return CompressionHandle(process, channel)
