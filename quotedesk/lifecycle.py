"""
Cancellable fetch lifecycle.

Ties an asynchronous fetch to the lifetime of its owner (an open dialog, a
mounted view) so that only the latest fetch can change visible state and
nothing changes after the owner is gone.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Loader = Callable[[Any, "CancellationToken"], Awaitable[T]]
Notify = Callable[[str, str], Any]


class FetchCancelled(Exception):
    """Raised by a loader that notices its token was cancelled."""
    pass


class CancellationToken:
    """
    Handle for one in-flight fetch.

    Cancelling is idempotent. Callbacks run once, at cancellation time, or
    immediately if the token is already cancelled.
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: List[Callable[[], Any]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], Any]):
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def raise_if_cancelled(self):
        if self._cancelled:
            raise FetchCancelled()


class LifecycleState(str, Enum):
    """Lifecycle of the element that owns fetch operations."""
    PENDING = "pending"
    ACTIVE = "active"
    DISPOSED = "disposed"


class FetchState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"


class FetchOutcome(str, Enum):
    """How a single fetch ended."""
    APPLIED = "applied"
    DISCARDED = "discarded"
    CANCELLED = "cancelled"
    ERRORED = "errored"


class LifecycleScope:
    """
    Owner of fetch operations.

    State changes after a suspension point are only allowed while the scope is
    ACTIVE. Disposing the scope closes every operation it created.
    """

    def __init__(self):
        self.state = LifecycleState.PENDING
        self._operations: List["FetchOperation"] = []

    @property
    def active(self) -> bool:
        return self.state is LifecycleState.ACTIVE

    def activate(self):
        if self.state is LifecycleState.DISPOSED:
            raise RuntimeError("Cannot activate a disposed scope")
        self.state = LifecycleState.ACTIVE

    def dispose(self):
        if self.state is LifecycleState.DISPOSED:
            return
        self.state = LifecycleState.DISPOSED
        for operation in self._operations:
            operation.close()

    def operation(
        self,
        loader: Loader,
        on_result: Optional[Callable[[Any], Any]] = None,
        notify: Optional[Notify] = None,
        name: str = "fetch",
    ) -> "FetchOperation":
        """Create a FetchOperation owned by this scope."""
        operation = FetchOperation(self, loader, on_result=on_result, notify=notify, name=name)
        self._operations.append(operation)
        return operation

    async def __aenter__(self) -> "LifecycleScope":
        self.activate()
        return self

    async def __aexit__(self, *exc_info):
        self.dispose()


class FetchOperation(Generic[T]):
    """
    One logical fetch (e.g. "load the lead shown in this dialog").

    At most one token is live at a time. Starting a new fetch cancels the
    previous one, so a stale result can never overwrite a newer one.
    """

    def __init__(
        self,
        scope: LifecycleScope,
        loader: Loader,
        on_result: Optional[Callable[[T], Any]] = None,
        notify: Optional[Notify] = None,
        name: str = "fetch",
    ):
        """
        Initialize fetch operation.

        Args:
            scope: Owner whose lifecycle gates state changes
            loader: Async callable ``loader(key, token)`` producing the result
            on_result: Called with each applied result
            notify: Called as ``notify(title, description)`` on reported failures
            name: Label used in logs and notifications
        """
        self.scope = scope
        self.name = name
        self._loader = loader
        self._on_result = on_result
        self._notify = notify
        self._token: Optional[CancellationToken] = None
        self._reset()

    def _reset(self):
        self.data: Optional[T] = None
        self.key: Any = None
        self.error: Optional[BaseException] = None
        self.is_loading = False
        self.state = FetchState.IDLE

    async def fetch(self, key: Any) -> FetchOutcome:
        """
        Run the loader for ``key`` and apply its result if still relevant.

        Args:
            key: Logical key of the fetch, e.g. a record id

        Returns:
            How the fetch ended. Failures are reported, never raised.
        """
        if not self.scope.active:
            return FetchOutcome.DISCARDED

        self.cancel()
        token = CancellationToken()
        self._token = token

        self.key = key
        self.error = None
        self.is_loading = True
        self.state = FetchState.FETCHING

        task = asyncio.ensure_future(self._loader(key, token))
        token.add_callback(task.cancel)

        try:
            result = await task
        except asyncio.CancelledError:
            if not token.cancelled:
                # The caller itself was cancelled
                raise
            return FetchOutcome.CANCELLED
        except FetchCancelled:
            return FetchOutcome.CANCELLED
        except Exception as e:
            if token.cancelled:
                return FetchOutcome.CANCELLED
            if not self.scope.active:
                return FetchOutcome.DISCARDED
            return self._fail(key, e)
        else:
            if token.cancelled:
                return FetchOutcome.CANCELLED
            if not self.scope.active:
                return FetchOutcome.DISCARDED
            self.data = result
            if self._on_result is not None:
                try:
                    self._on_result(result)
                except Exception as e:
                    return self._fail(key, e)
            return FetchOutcome.APPLIED
        finally:
            if self._token is token:
                self._token = None
                self.is_loading = False
                self.state = FetchState.IDLE

    def cancel(self):
        """Invalidate the in-flight fetch, if any."""
        token = self._token
        if token is None:
            return
        self._token = None
        self.is_loading = False
        self.state = FetchState.IDLE
        token.cancel()

    def close(self):
        """Cancel the in-flight fetch and reset all state to empty."""
        self.cancel()
        self._reset()

    def _fail(self, key: Any, error: Exception) -> FetchOutcome:
        logger.exception("%s failed for %r", self.name, key)
        self.error = error
        self._report(error)
        return FetchOutcome.ERRORED

    def _report(self, error: BaseException):
        if self._notify is None:
            return
        try:
            self._notify(f"Failed to load {self.name}", str(error) or type(error).__name__)
        except Exception:
            logger.exception("Notification for %s failed", self.name)
