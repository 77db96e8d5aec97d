"""
Lock management for rank batches.
"""

import threading
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set

from ..app_logger import get_logger
from ..core.exceptions import ConcurrencyError, ValidationError

logger = get_logger("concurrency")


class LockType(Enum):
    """Types of locks available."""
    READ = "read"
    EXCLUSIVE = "exclusive"


@dataclass
class LockInfo:
    """Information about a held lock."""
    lock_id: str
    resource_id: str
    lock_type: LockType
    holder_id: str
    acquired_at: float
    timeout: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.timeout is not None and now > self.acquired_at + self.timeout


class ConcurrencyManager:
    """Non-blocking resource locks.

    Acquiring a conflicting lock fails immediately with ConcurrencyError instead of
    waiting. Locks with a timeout are treated as released once it elapses, so a holder
    that may outlive its timeout checks ``holds_lock`` before publishing its work.
    """

    def __init__(self, default_timeout: Optional[float] = 300.0):
        self._default_timeout = default_timeout
        self._locks: Dict[str, Dict[LockType, Set[str]]] = defaultdict(lambda: defaultdict(set))
        self._lock_holders: Dict[str, LockInfo] = {}
        self._lock = threading.RLock()

    def acquire_lock(self, resource_id: str, lock_type: LockType,
                     holder_id: str, timeout: Optional[float] = None) -> str:
        """Acquire a lock on a resource."""
        if not resource_id:
            raise ValidationError("Lock resource id must not be empty")
        with self._lock:
            self._expire_locks(resource_id)

            if not self._can_acquire_lock(resource_id, lock_type, holder_id):
                raise ConcurrencyError(
                    f"Cannot acquire {lock_type.value} lock on {resource_id}",
                    error_code="LOCKED",
                    details={"resource_id": resource_id}
                )

            lock_id = str(uuid.uuid4())
            self._locks[resource_id][lock_type].add(lock_id)
            self._lock_holders[lock_id] = LockInfo(
                lock_id=lock_id,
                resource_id=resource_id,
                lock_type=lock_type,
                holder_id=holder_id,
                acquired_at=time.monotonic(),
                timeout=timeout if timeout is not None else self._default_timeout
            )
            return lock_id

    def release_lock(self, lock_id: str) -> bool:
        """Release a lock."""
        with self._lock:
            lock_info = self._lock_holders.pop(lock_id, None)
            if lock_info is None:
                return False

            resource_locks = self._locks.get(lock_info.resource_id)
            if resource_locks is not None:
                resource_locks[lock_info.lock_type].discard(lock_id)
                # Clean up empty lock types
                if not resource_locks[lock_info.lock_type]:
                    del resource_locks[lock_info.lock_type]
                # Clean up empty resources
                if not resource_locks:
                    del self._locks[lock_info.resource_id]
            return True

    def _can_acquire_lock(self, resource_id: str, lock_type: LockType, holder_id: str) -> bool:
        """Check if a lock can be acquired."""
        existing_locks = self._locks.get(resource_id)
        if not existing_locks:
            return True

        # Same holder can acquire multiple locks
        for locks in existing_locks.values():
            for lock_id in locks:
                if self._lock_holders[lock_id].holder_id == holder_id:
                    return True

        if lock_type == LockType.READ:
            return LockType.EXCLUSIVE not in existing_locks
        return False

    def _expire_locks(self, resource_id: str) -> None:
        now = time.monotonic()
        expired = [info.lock_id for info in self.get_lock_info(resource_id) if info.is_expired(now)]
        for lock_id in expired:
            logger.warning("Lock %s on %s expired; releasing", lock_id, resource_id)
            self.release_lock(lock_id)

    @contextmanager
    def lock(self, resource_id: str, lock_type: LockType,
             holder_id: str, timeout: Optional[float] = None):
        """Context manager for acquiring and releasing locks."""
        lock_id = self.acquire_lock(resource_id, lock_type, holder_id, timeout)
        try:
            yield lock_id
        finally:
            self.release_lock(lock_id)

    def holds_lock(self, lock_id: str) -> bool:
        """True while ``lock_id`` is held and has not expired."""
        with self._lock:
            lock_info = self._lock_holders.get(lock_id)
            if lock_info is None:
                return False
            self._expire_locks(lock_info.resource_id)
            return lock_id in self._lock_holders

    def is_locked(self, resource_id: str) -> bool:
        with self._lock:
            self._expire_locks(resource_id)
            return bool(self._locks.get(resource_id))

    def get_lock_info(self, resource_id: str) -> List[LockInfo]:
        """Get information about all locks on a resource."""
        with self._lock:
            locks = []
            for lock_ids in self._locks.get(resource_id, {}).values():
                for lock_id in lock_ids:
                    if lock_id in self._lock_holders:
                        locks.append(self._lock_holders[lock_id])
            return locks

    def get_holder_locks(self, holder_id: str) -> List[LockInfo]:
        """Get all locks held by a specific holder."""
        with self._lock:
            return [lock_info for lock_info in self._lock_holders.values()
                    if lock_info.holder_id == holder_id]
