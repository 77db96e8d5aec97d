import time

import pytest

from markbook.core.exceptions import ConcurrencyError, ValidationError
from markbook.services import ConcurrencyManager, LockType


def test_exclusive_lock_is_not_shared():
    manager = ConcurrencyManager()
    manager.acquire_lock("rank:subject:a", LockType.EXCLUSIVE, "batch-1")

    with pytest.raises(ConcurrencyError) as excinfo:
        manager.acquire_lock("rank:subject:a", LockType.EXCLUSIVE, "batch-2")
    assert excinfo.value.error_code == "LOCKED"


def test_read_locks_are_shared_but_block_exclusive():
    manager = ConcurrencyManager()
    manager.acquire_lock("res", LockType.READ, "reader-1")
    manager.acquire_lock("res", LockType.READ, "reader-2")

    with pytest.raises(ConcurrencyError):
        manager.acquire_lock("res", LockType.EXCLUSIVE, "writer")


def test_same_holder_can_reacquire():
    manager = ConcurrencyManager()
    manager.acquire_lock("res", LockType.EXCLUSIVE, "batch-1")
    manager.acquire_lock("res", LockType.EXCLUSIVE, "batch-1")
    assert len(manager.get_holder_locks("batch-1")) == 2


def test_release_frees_the_resource():
    manager = ConcurrencyManager()
    lock_id = manager.acquire_lock("res", LockType.EXCLUSIVE, "batch-1")

    assert manager.release_lock(lock_id)
    assert not manager.release_lock(lock_id)
    assert not manager.is_locked("res")
    manager.acquire_lock("res", LockType.EXCLUSIVE, "batch-2")


def test_context_manager_releases_on_error():
    manager = ConcurrencyManager()
    with pytest.raises(RuntimeError):
        with manager.lock("res", LockType.EXCLUSIVE, "batch-1"):
            assert manager.is_locked("res")
            raise RuntimeError("batch failed")
    assert not manager.is_locked("res")


def test_expired_lock_is_released_lazily():
    manager = ConcurrencyManager(default_timeout=0.05)
    manager.acquire_lock("res", LockType.EXCLUSIVE, "stuck-batch")
    time.sleep(0.1)

    manager.acquire_lock("res", LockType.EXCLUSIVE, "batch-2")
    assert [info.holder_id for info in manager.get_lock_info("res")] == ["batch-2"]


def test_lock_without_timeout_does_not_expire():
    manager = ConcurrencyManager(default_timeout=None)
    manager.acquire_lock("res", LockType.EXCLUSIVE, "batch-1")
    time.sleep(0.05)
    with pytest.raises(ConcurrencyError):
        manager.acquire_lock("res", LockType.EXCLUSIVE, "batch-2")


def test_empty_resource_id():
    with pytest.raises(ValidationError):
        ConcurrencyManager().acquire_lock("", LockType.EXCLUSIVE, "batch-1")


def test_holds_lock_until_release_or_expiry():
    manager = ConcurrencyManager()
    lock_id = manager.acquire_lock("res", LockType.EXCLUSIVE, "batch-1", timeout=0.01)
    assert manager.holds_lock(lock_id)

    time.sleep(0.05)
    assert not manager.holds_lock(lock_id)
    assert not manager.is_locked("res")

    other = manager.acquire_lock("res", LockType.EXCLUSIVE, "batch-2")
    assert manager.holds_lock(other)
    manager.release_lock(other)
    assert not manager.holds_lock(other)
