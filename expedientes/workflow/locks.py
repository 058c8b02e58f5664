from __future__ import annotations

from contextlib import contextmanager
import threading
from typing import Iterator


class DocumentLocks:
    """
    One lock per document id.

    Mutations on the same document run one at a time; different documents
    never wait on each other. Callers only ask for the lock of a document
    that exists, and documents are never deleted, so the registry grows with
    the number of documents and no further.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def _lock_for(self, document_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(document_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[document_id] = lock
            return lock

    @contextmanager
    def hold(self, document_id: int) -> Iterator[None]:
        lock = self._lock_for(document_id)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
