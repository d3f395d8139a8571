"""In-process serialization and optimistic retry for multi-aggregate commands.

Commands that touch shared aggregates (product stock, an order, an
idempotency slot) run while holding a lock per touched key.  Locks are
always taken in sorted order, so two commands that share keys cannot
deadlock.  Writers outside this process are caught by the version check on
each aggregate; the resulting ``ExpectedVersionError`` is retried with a
short backoff.
"""

import os
import random
import threading
import time
import zlib
from contextlib import ExitStack, contextmanager

import structlog
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

logger = structlog.get_logger(__name__)

DEFAULT_STRIPES = 256
DEFAULT_BASE_DELAY = 0.02


def conflict_retries() -> int:
    return int(os.environ.get("STOCK_CONFLICT_RETRIES", "3"))


class KeyedLocks:
    """A fixed pool of re-entrant locks addressed by string key.

    Keys are hashed onto stripes; unrelated keys may share a stripe, which
    only costs parallelism.
    """

    def __init__(self, stripes: int = DEFAULT_STRIPES) -> None:
        self._locks = [threading.RLock() for _ in range(stripes)]

    def _stripe(self, key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) % len(self._locks)

    @contextmanager
    def hold(self, keys):
        stripes = sorted({self._stripe(key) for key in keys})
        with ExitStack() as stack:
            for stripe in stripes:
                lock = self._locks[stripe]
                lock.acquire()
                stack.callback(lock.release)
            yield


_locks = KeyedLocks()


def product_key(product_id) -> str:
    return f"product:{product_id}"


def order_key(order_id) -> str:
    return f"order:{order_id}"


def transaction_key(transaction_id) -> str:
    return f"transaction:{transaction_id}"


def callback_key(provider, correlation_id) -> str:
    return f"callback:{provider}:{correlation_id}"


def hold(keys):
    """Hold the module-wide locks for ``keys`` for the duration of a block."""
    return _locks.hold(keys)


def process_exclusively(command, keys, attempts: int | None = None):
    """Process ``command`` synchronously while holding locks for ``keys``.

    The unit of work opened by the command handler commits before the locks
    are released.  Version conflicts raised by the repository are retried up
    to ``attempts`` times with jittered exponential backoff.
    """
    attempts = attempts or conflict_retries()
    keys = list(keys)
    for attempt in range(1, attempts + 1):
        try:
            with _locks.hold(keys):
                return current_domain.process(command, asynchronous=False)
        except ExpectedVersionError:
            if attempt == attempts:
                logger.warning(
                    "version_conflict_exhausted",
                    command=command.__class__.__name__,
                    attempts=attempts,
                )
                raise
            delay = DEFAULT_BASE_DELAY * (2 ** (attempt - 1)) * (1 + random.random())
            logger.info(
                "version_conflict_retry",
                command=command.__class__.__name__,
                attempt=attempt,
                delay=round(delay, 3),
            )
            time.sleep(delay)
