"""
TenantLockRegistry -- per-tenant mutual exclusion for the payment write path.

Responsibility:
    Serializes every allocation, reversal and edit for one tenant inside a
    process.  Computing an allocation reads the tenant's whole payment
    history and then writes one row; two writers computing against the same
    snapshot would apply the same unpaid month twice.

Architecture position:
    Services -- stateful infrastructure shared by RentPaymentService
    instances.  Cross-process writers are additionally serialized by the
    ``SELECT ... FOR UPDATE`` on the tenant row (PostgreSQL).

Invariants enforced:
    - At most one holder per tenant id at a time.
    - Locks for different tenants never block each other.

Failure modes:
    - TenantBusyError when ``timeout`` elapses before the lock is free.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

from rent_kernel.exceptions import TenantBusyError
from rent_kernel.logging_config import get_logger

logger = get_logger("services.tenant_lock")


class TenantLockRegistry:
    """
    One ``threading.Lock`` per tenant id, created on first use.

    Share a single registry between every service instance that writes to
    the same database from this process.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, tenant_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(tenant_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[tenant_id] = lock
            return lock

    @contextmanager
    def hold(self, tenant_id: str, timeout: float | None = None) -> Iterator[None]:
        """
        Hold the tenant's lock for the duration of the block.

        Args:
            tenant_id: Tenant whose writes are serialized.
            timeout: Seconds to wait; None waits indefinitely.

        Raises:
            TenantBusyError: If the lock is not acquired within ``timeout``.
        """
        lock = self.lock_for(tenant_id)
        t0 = time.monotonic()
        acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            logger.warning("tenant_lock_timeout", extra={
                "tenant_id": tenant_id,
                "timeout_seconds": timeout,
            })
            raise TenantBusyError(tenant_id, timeout)

        waited_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.debug("tenant_lock_acquired", extra={
            "tenant_id": tenant_id,
            "waited_ms": waited_ms,
        })
        try:
            yield
        finally:
            lock.release()
            logger.debug("tenant_lock_released", extra={"tenant_id": tenant_id})
