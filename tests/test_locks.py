import threading

import pytest

from packing_tracker.errors import ConflictError
from packing_tracker.locks import CustomerLockRegistry


def _try_hold(registry: CustomerLockRegistry, customer_id: str, timeout: float) -> str:
    outcome = {}

    def worker() -> None:
        try:
            with registry.hold(customer_id, timeout):
                outcome["result"] = "acquired"
        except ConflictError:
            outcome["result"] = "conflict"

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join(5)
    return outcome["result"]


def test_busy_customer_raises_conflict() -> None:
    registry = CustomerLockRegistry(default_timeout=0.05)

    with registry.hold("c-1"):
        assert registry.is_locked("c-1")
        assert _try_hold(registry, "c-1", 0) == "conflict"
        assert _try_hold(registry, "c-1", 0.05) == "conflict"

    assert not registry.is_locked("c-1")
    assert _try_hold(registry, "c-1", 0) == "acquired"


def test_different_customers_do_not_block_each_other() -> None:
    registry = CustomerLockRegistry()

    with registry.hold("c-1"):
        assert _try_hold(registry, "c-2", 0) == "acquired"


def test_lock_is_released_when_operation_fails() -> None:
    registry = CustomerLockRegistry()

    with pytest.raises(RuntimeError):
        with registry.hold("c-1"):
            raise RuntimeError("compression failed")

    assert not registry.is_locked("c-1")


def test_default_timeout_applies_when_none_given() -> None:
    registry = CustomerLockRegistry(default_timeout=0)

    with registry.hold("c-1"):
        with pytest.raises(ConflictError, match="busy"):
            with registry.hold("c-1"):
                pass


def test_forget_keeps_held_locks() -> None:
    registry = CustomerLockRegistry()

    with registry.hold("c-1"):
        registry.forget("c-1")
        assert registry.is_locked("c-1")

    registry.forget("c-1")
    assert not registry.is_locked("c-1")
