"""
LedgerGraph - the current published graph state plus write coordination.

Readers call ``snapshot()`` and never block. Writers:
- serialize on the accounts whose balances they check (``serialize``),
  acquiring per-account locks in id order with a bounded timeout
- publish through ``commit``, which applies a mutator to a draft of the
  latest state under a short commit lock and swaps the reference

A mutator that raises leaves the published state untouched.
"""

import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from errors import Contention
from graph.state import GraphState, StateDraft

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerGraph:
    def __init__(self, state: GraphState | None = None, lock_timeout: float = 2.0):
        self._state = state or GraphState()
        self._commit_lock = threading.Lock()
        self._locks_guard = threading.Lock()
        self._account_locks: dict[str, threading.Lock] = {}
        self.lock_timeout = lock_timeout

    def snapshot(self) -> GraphState:
        """Current published state. Immutable; safe to traverse without locks."""
        return self._state

    def _lock_for(self, account_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._account_locks.get(account_id)
            if lock is None:
                lock = self._account_locks[account_id] = threading.Lock()
            return lock

    @contextmanager
    def serialize(self, account_ids: Iterable[str], timeout: float | None = None) -> Iterator[None]:
        """Hold the serialization points of ``account_ids`` for a compare-validate-apply sequence."""
        timeout = self.lock_timeout if timeout is None else timeout
        ids = sorted(set(account_ids))
        held: list[threading.Lock] = []
        try:
            for account_id in ids:
                lock = self._lock_for(account_id)
                if not lock.acquire(timeout=timeout):
                    raise Contention(
                        f"Account '{account_id}' is busy; retry the write",
                        {"account_id": account_id, "timeout_seconds": timeout},
                    )
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                lock.release()
            self._forget_retired(ids)

    def _forget_retired(self, account_ids: Iterable[str]) -> None:
        """Drop the locks of retired accounts; no write to them can validate again."""
        state = self._state
        with self._locks_guard:
            for account_id in account_ids:
                lock = self._account_locks.get(account_id)
                if lock is not None and account_id in state and not state.is_live(account_id) and not lock.locked():
                    del self._account_locks[account_id]

    def tracked_accounts(self) -> frozenset[str]:
        """Accounts that currently have a serialization lock."""
        with self._locks_guard:
            return frozenset(self._account_locks)

    def commit(self, mutator: Callable[[StateDraft], T]) -> T:
        """Apply ``mutator`` to a draft of the latest state and publish it atomically."""
        with self._commit_lock:
            draft = self._state.draft()
            result = mutator(draft)
            self._state = draft.freeze()
            logger.debug("Published graph version %s", self._state.version)
            return result
