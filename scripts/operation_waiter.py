"""Wait for Spanner long-running operations with a deadline.

Instance and database creation return google.api_core Operation futures.
wait_for_operation() blocks on the future in bounded slices so that a
cancelled or expired Deadline is noticed between slices; the polling
cadence inside a slice is the client library's own retry/backoff.
"""
import concurrent.futures
import threading
import time

from google.api_core.exceptions import GoogleAPICallError

from harness_errors import OperationFailed, OperationTimeout

# Longest single blocking call on an operation; bounds how late a
# cancel() is noticed.
WAIT_SLICE = 30


class Deadline:
    """Absolute deadline plus cancellation token for one scenario."""

    def __init__(self, timeout, clock=time.monotonic):
        self.timeout = timeout
        self._clock = clock
        self._expires_at = clock() + timeout
        self._cancelled = threading.Event()

    def remaining(self):
        if self._cancelled.is_set():
            return 0.0
        return max(0.0, self._expires_at - self._clock())

    def expired(self):
        return self.remaining() <= 0

    def cancel(self):
        self._cancelled.set()

    @property
    def cancelled(self):
        return self._cancelled.is_set()


def wait_for_operation(operation, deadline, description):
    """Block until `operation` resolves and return its result.

    Raises OperationTimeout if the deadline is spent (or cancelled) first,
    and OperationFailed if the operation finished with an error.  Errors
    raised while the operation is still unfinished (transport, auth) are
    re-raised unchanged.
    """
    while True:
        remaining = deadline.remaining()
        if remaining <= 0:
            raise OperationTimeout(description, deadline.timeout,
                                   cancelled=deadline.cancelled)
        try:
            return operation.result(timeout=min(remaining, WAIT_SLICE))
        except concurrent.futures.TimeoutError:
            left = deadline.remaining()
            if left > 0:
                print(f"  Waiting for {description}... ({left:.0f}s left)")
        except GoogleAPICallError as e:
            if operation.operation.done:
                raise OperationFailed(description, e) from e
            raise
