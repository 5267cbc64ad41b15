"""Bookkeeping for executions that have not reached a terminal state."""

from __future__ import annotations

import threading
from typing import Dict, Optional

from ..exceptions import ExecutionCancelled


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and one execution."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExecutionCancelled("Execution was cancelled")


class RunningExecutionRegistry:
    """Thread-safe map of execution id -> cancellation token.

    An entry exists exactly while its execution is non-terminal: the
    coordinator registers on start and removes on finalization.
    """

    def __init__(self) -> None:
        self._tokens: Dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    def register(self, execution_id: str) -> CancellationToken:
        token = CancellationToken()
        with self._lock:
            if execution_id in self._tokens:
                raise ValueError(f"Execution {execution_id} is already registered")
            self._tokens[execution_id] = token
        return token

    def remove(self, execution_id: str) -> Optional[CancellationToken]:
        with self._lock:
            return self._tokens.pop(execution_id, None)

    def cancel(self, execution_id: str) -> bool:
        """Signal cancellation; ``False`` when the id is not running."""
        with self._lock:
            token = self._tokens.get(execution_id)
            if token is None:
                return False
            token.cancel()
        return True

    def __contains__(self, execution_id: object) -> bool:
        with self._lock:
            return execution_id in self._tokens

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
