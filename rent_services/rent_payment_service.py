"""
RentPaymentService -- the transactional write path for rent payments.

Responsibility:
    Validates payment, reversal and edit requests, serializes them per
    tenant, runs the rent engines over a fresh snapshot of the tenant's
    payment history and persists the result (payment row + allocation
    record) atomically.  Also serves the read-side ledger views (allocation
    preview, statement, current-month status).

Architecture position:
    Services -- imperative shell over rent_engines + rent_kernel.  This is
    the only layer that holds sessions, locks and the clock.

Invariants enforced:
    - At most one concurrent allocation/reversal/edit per tenant: the
      TenantLockRegistry lock is held across read -> compute -> write ->
      commit, and the tenant row is locked with SELECT ... FOR UPDATE.
    - A payment is reversed at most once: checked against the history and
      backed by the UNIQUE reversed_payment_id constraint.
    - A reversal unwinds the CURRENT paid-by-month snapshot, not the
      original payment's own allocation.
    - No partial write: every failure rolls the transaction back.
    - Every create, edit and reversal appends a RentAuditEvent in the same
      transaction, carrying the payment state it replaced.

Failure modes:
    - ValidationError subclasses for malformed requests (before any I/O).
    - TenantNotFoundError / PaymentNotFoundError for unknown ids.
    - PaymentAlreadyReversedError, ReversalOfReversalError,
      PaymentNotEditableError, ReversalNotAbsorbableError for rule conflicts.
    - TenantBusyError when the tenant lock times out.

Audit relevance:
    The allocation written with each row is the sole record the
    paid-balance aggregator replays; it is computed once, here, and never
    recomputed except by an explicit in-window edit.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from rent_config import RentLedgerConfig
from rent_engines.allocation import AllocationPreview
from rent_engines.eligibility import check_edit_date, check_editable, check_reversible
from rent_engines.ledger import RentLedger
from rent_engines.status import MonthStatement, TenantStatusReport
from rent_kernel.db.base import new_id
from rent_kernel.db.engine import session_scope
from rent_kernel.domain.clock import Clock, SystemClock
from rent_kernel.domain.months import MonthKey
from rent_kernel.domain.payments import Payment, PaymentMethod, encode_allocation
from rent_kernel.domain.values import ZERO, coerce_date, to_money
from rent_kernel.exceptions import (
    InvalidAmountError,
    MissingFieldError,
    PaymentAlreadyReversedError,
    PaymentNotFoundError,
    ReversalNotAbsorbableError,
)
from rent_kernel.logging_config import LogContext, get_logger
from rent_kernel.models.audit_event import RentAuditAction, RentAuditEvent
from rent_kernel.models.payment import RentPayment
from rent_kernel.selectors.audit_selector import AuditSelector, PaymentAuditEntry
from rent_kernel.selectors.payment_selector import (
    PaymentSelector,
    TenantSelector,
    payment_from_row,
)
from rent_services.tenant_lock import TenantLockRegistry

logger = get_logger("services.rent_payment")


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require(**fields: Any) -> None:
    missing = [name for name, value in fields.items() if _is_missing(value)]
    if missing:
        raise MissingFieldError(missing)


def _positive_amount(value: Any) -> Decimal:
    amount = to_money(value)
    if amount <= ZERO:
        raise InvalidAmountError(value, "amount must be greater than zero")
    return amount


def _audit_state(row: RentPayment) -> dict[str, Any]:
    """JSON-safe snapshot of a payment row; the allocation is kept as stored."""
    return {
        "payment_id": row.id,
        "amount": str(row.amount),
        "method": row.method,
        "payment_date": row.payment_date.isoformat(),
        "allocation": row.allocation_json,
        "unapplied_amount": str(row.unapplied_amount),
        "reference": row.reference,
        "notes": row.notes,
    }


# =============================================================================
# Requests and results
# =============================================================================


@dataclass(frozen=True)
class PaymentRequest:
    """A new payment as submitted by a caller (raw, unvalidated values)."""

    tenant_id: str | None
    amount: Any
    method: Any
    payment_date: Any
    reference: str | None = None
    notes: str | None = None
    actor_id: str | None = None

    def validated(self) -> tuple[str, Decimal, PaymentMethod, date]:
        """
        Raises:
            MissingFieldError: Listing every absent required field.
            InvalidAmountError, InvalidPaymentMethodError, InvalidDateError.
        """
        _require(
            tenant_id=self.tenant_id,
            amount=self.amount,
            method=self.method,
            payment_date=self.payment_date,
        )
        return (
            str(self.tenant_id),
            _positive_amount(self.amount),
            PaymentMethod.coerce(self.method),
            coerce_date(self.payment_date, "payment_date"),
        )


@dataclass(frozen=True)
class ReversalRequest:
    """Reverse ``payment_id``; the reversal is dated ``payment_date`` or today."""

    payment_id: str | None
    payment_date: Any = None
    notes: str | None = None
    actor_id: str | None = None


@dataclass(frozen=True)
class PaymentEdit:
    """
    Replace the amount (and optionally date, method, reference, notes) of
    the tenant's latest payment.  ``None`` keeps the stored value.
    """

    payment_id: str | None
    amount: Any
    payment_date: Any = None
    method: Any = None
    reference: str | None = None
    notes: str | None = None
    actor_id: str | None = None


@dataclass(frozen=True)
class RecordedPayment:
    """Persisted payment plus what its allocation did."""

    payment: Payment
    allocation: dict[MonthKey, Decimal]
    remaining: Decimal

    @property
    def payment_id(self) -> str:
        return self.payment.payment_id


# =============================================================================
# Service
# =============================================================================


class RentPaymentService:
    """
    Write path and ledger views for tenant rent.

    Contract:
        Each public write method runs in its own transaction under the
        tenant's lock and either commits everything or nothing.
    Guarantees:
        - The returned ``RecordedPayment`` reflects exactly what was stored.
    Non-goals:
        - Does not create tenants or houses.
        - Does not authenticate the actor; ``actor_id`` is recorded as given.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        lock_registry: TenantLockRegistry | None = None,
        config: RentLedgerConfig | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._locks = lock_registry or TenantLockRegistry()
        self._config = config or RentLedgerConfig()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def record_payment(self, request: PaymentRequest) -> RecordedPayment:
        """
        Allocate and persist a new payment.

        Raises:
            ValidationError: Malformed request.
            TenantNotFoundError: Unknown tenant.
            TenantBusyError: Tenant lock timed out.
        """
        tenant_id, amount, method, payment_date = request.validated()

        with LogContext.bind(tenant_id=tenant_id, actor_id=request.actor_id):
            with self._locked_ledger(tenant_id) as (session, ledger):
                outcome = ledger.allocate_payment(amount, payment_date)

                row = RentPayment(
                    id=new_id(),
                    tenant_id=tenant_id,
                    amount=amount,
                    method=method.value,
                    payment_date=payment_date,
                    allocation_json=encode_allocation(outcome.allocation),
                    unapplied_amount=outcome.remaining,
                    is_reversal=False,
                    reference=request.reference,
                    notes=request.notes,
                    recorded_at=self._clock.now(),
                    sequence=PaymentSelector(session).next_sequence(tenant_id),
                    created_by=request.actor_id,
                )
                session.add(row)
                session.flush()
                self._audit(
                    session, RentAuditAction.PAYMENT_CREATED, row,
                    actor_id=request.actor_id, before=None,
                )

                logger.info("payment_recorded", extra={
                    "payment_id": row.id,
                    "amount": str(amount),
                    "payment_date": payment_date.isoformat(),
                    "months": [str(m) for m in outcome.allocation],
                    "remaining": str(outcome.remaining),
                })
                payment = payment_from_row(row)

        return RecordedPayment(
            payment=payment,
            allocation=dict(outcome.allocation),
            remaining=outcome.remaining,
        )

    def reverse_payment(self, request: ReversalRequest) -> RecordedPayment:
        """
        Persist a reversal of ``request.payment_id``.

        The reversal unwinds the tenant's most recently paid months first,
        against the paid snapshot as it stands now.  A reversal that can
        only be partly absorbed is stored with its ``unapplied_amount`` and
        logged; one that absorbs nothing is rejected.

        Raises:
            MissingFieldError: No payment id.
            PaymentNotFoundError: Unknown payment.
            ReversalOfReversalError: Target is a reversal.
            PaymentAlreadyReversedError: Target already reversed.
            ReversalNotAbsorbableError: No paid month to unwind.
        """
        _require(payment_id=request.payment_id)
        payment_id = str(request.payment_id)
        reversal_date = (
            coerce_date(request.payment_date, "payment_date")
            if request.payment_date is not None
            else self._clock.today()
        )
        tenant_id = self._tenant_of(payment_id)

        with LogContext.bind(tenant_id=tenant_id, payment_id=payment_id, actor_id=request.actor_id):
            with self._locked_ledger(tenant_id) as (session, ledger):
                target = check_reversible(payment_id, ledger.payments)
                payments = PaymentSelector(session)
                existing = payments.reversal_of(payment_id)
                if existing is not None:
                    logger.warning("reversal_rejected", extra={
                        "payment_id": payment_id,
                        "reason": PaymentAlreadyReversedError.code,
                        "reversal_id": existing.id,
                    })
                    raise PaymentAlreadyReversedError(payment_id, existing.id)

                outcome = ledger.allocate_reversal(target.amount)

                if not outcome.allocation:
                    logger.warning("reversal_rejected", extra={
                        "payment_id": payment_id,
                        "reason": ReversalNotAbsorbableError.code,
                        "amount": str(target.amount),
                    })
                    raise ReversalNotAbsorbableError(payment_id, str(target.amount))

                row = RentPayment(
                    id=new_id(),
                    tenant_id=tenant_id,
                    amount=-target.amount,
                    method=target.method.value,
                    payment_date=reversal_date,
                    allocation_json=encode_allocation(outcome.allocation),
                    unapplied_amount=outcome.remaining,
                    is_reversal=True,
                    reversed_payment_id=payment_id,
                    reference=target.reference,
                    notes=request.notes,
                    recorded_at=self._clock.now(),
                    sequence=payments.next_sequence(tenant_id),
                    created_by=request.actor_id,
                )
                session.add(row)
                try:
                    session.flush()
                except IntegrityError as exc:
                    # Concurrent writer in another process won the unique constraint
                    logger.warning("concurrent_reversal_conflict", extra={
                        "payment_id": payment_id,
                    })
                    raise PaymentAlreadyReversedError(payment_id) from exc
                self._audit(
                    session, RentAuditAction.PAYMENT_REVERSED, row,
                    actor_id=request.actor_id, before=None, entity_id=payment_id,
                )

                if outcome.remaining > ZERO:
                    logger.warning("reversal_partially_absorbed", extra={
                        "payment_id": payment_id,
                        "reversal_id": row.id,
                        "unapplied_amount": str(outcome.remaining),
                    })
                logger.info("reversal_recorded", extra={
                    "payment_id": payment_id,
                    "reversal_id": row.id,
                    "amount": str(row.amount),
                    "months": [str(m) for m in outcome.allocation],
                })
                reversal = payment_from_row(row)

        return RecordedPayment(
            payment=reversal,
            allocation=dict(outcome.allocation),
            remaining=outcome.remaining,
        )

    def edit_payment(self, edit: PaymentEdit) -> RecordedPayment:
        """
        Re-record the tenant's latest payment with a new amount.

        The allocation is recomputed from scratch with the edited payment
        left out of the paid snapshot, as if it were a new payment on its
        (possibly changed) date.

        Raises:
            MissingFieldError, InvalidAmountError: Malformed edit.
            PaymentNotFoundError: Unknown payment.
            PaymentNotEditableError: Outside the edit window.
        """
        _require(payment_id=edit.payment_id, amount=edit.amount)
        payment_id = str(edit.payment_id)
        amount = _positive_amount(edit.amount)
        method = PaymentMethod.coerce(edit.method) if edit.method is not None else None
        new_date = (
            coerce_date(edit.payment_date, "payment_date")
            if edit.payment_date is not None
            else None
        )
        tenant_id = self._tenant_of(payment_id)
        today = self._clock.today()

        with LogContext.bind(tenant_id=tenant_id, payment_id=payment_id, actor_id=edit.actor_id):
            with self._locked_ledger(tenant_id) as (session, ledger):
                target = check_editable(payment_id, ledger.payments, today)
                payment_date = new_date or target.payment_date
                check_edit_date(payment_id, payment_date, today)

                outcome = ledger.allocate_payment(
                    amount, payment_date, exclude_payment_id=payment_id
                )

                row = session.get(RentPayment, payment_id)
                before = _audit_state(row)
                previous_amount = row.amount
                row.amount = amount
                row.payment_date = payment_date
                row.allocation_json = encode_allocation(outcome.allocation)
                row.unapplied_amount = outcome.remaining
                if method is not None:
                    row.method = method.value
                if edit.reference is not None:
                    row.reference = edit.reference
                if edit.notes is not None:
                    row.notes = edit.notes
                session.flush()
                self._audit(
                    session, RentAuditAction.PAYMENT_UPDATED, row,
                    actor_id=edit.actor_id, before=before,
                )

                logger.info("payment_edited", extra={
                    "payment_id": payment_id,
                    "previous_amount": str(previous_amount),
                    "amount": str(amount),
                    "payment_date": payment_date.isoformat(),
                    "months": [str(m) for m in outcome.allocation],
                    "remaining": str(outcome.remaining),
                })
                payment = payment_from_row(row)

        return RecordedPayment(
            payment=payment,
            allocation=dict(outcome.allocation),
            remaining=outcome.remaining,
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def preview_allocation(
        self,
        tenant_id: str,
        amount: Any,
        payment_date: Any = None,
    ) -> AllocationPreview:
        """What ``record_payment`` would allocate right now; nothing is written."""
        _require(tenant_id=tenant_id, amount=amount)
        value = _positive_amount(amount)
        on = coerce_date(payment_date, "payment_date") if payment_date is not None else self._clock.today()
        with session_scope(self._session_factory) as session:
            ledger = self._load_ledger(session, tenant_id)
            return ledger.preview(value, on)

    def tenant_statement(
        self,
        tenant_id: str,
        through_date: date | None = None,
    ) -> tuple[MonthStatement, ...]:
        """Per-month expected/paid/balance/status from move-in through ``through_date``."""
        with session_scope(self._session_factory) as session:
            ledger = self._load_ledger(session, tenant_id)
            return ledger.statement(through_date or self._clock.today())

    def tenant_status(self, tenant_id: str) -> TenantStatusReport:
        with session_scope(self._session_factory) as session:
            ledger = self._load_ledger(session, tenant_id)
            return ledger.status(self._clock.today())

    def payment_audit_trail(self, payment_id: str) -> tuple[PaymentAuditEntry, ...]:
        """Creation, edits and reversal of ``payment_id``, oldest first."""
        _require(payment_id=payment_id)
        with session_scope(self._session_factory) as session:
            return tuple(AuditSelector(session).events_for_payment(str(payment_id)))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _load_ledger(self, session: Session, tenant_id: str, for_update: bool = False) -> RentLedger:
        terms = TenantSelector(session).load_terms(tenant_id, for_update=for_update)
        return RentLedger.from_source(
            terms,
            PaymentSelector(session),
            lookahead_months=self._config.ledger.lookahead_months,
        )

    @contextmanager
    def _locked_ledger(self, tenant_id: str) -> Iterator[tuple[Session, RentLedger]]:
        """
        Tenant lock -> transaction -> row lock -> fresh ledger snapshot.

        The commit happens when the inner ``session_scope`` exits, still
        inside the tenant lock.
        """
        timeout = self._config.concurrency.lock_timeout_seconds
        with self._locks.hold(tenant_id, timeout=timeout):
            with session_scope(self._session_factory) as session:
                yield session, self._load_ledger(session, tenant_id, for_update=True)

    def _audit(
        self,
        session: Session,
        action: RentAuditAction,
        row: RentPayment,
        actor_id: str | None,
        before: dict[str, Any] | None,
        entity_id: str | None = None,
    ) -> None:
        """Append the audit event for a write, inside the write's transaction."""
        session.add(RentAuditEvent(
            seq=AuditSelector(session).next_seq(row.tenant_id),
            entity_type="RentPayment",
            entity_id=entity_id or row.id,
            tenant_id=row.tenant_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload={"before": before, "after": _audit_state(row)},
        ))
        session.flush()

    def _tenant_of(self, payment_id: str) -> str:
        """Tenant owning ``payment_id`` (immutable, so read before locking)."""
        with session_scope(self._session_factory) as session:
            row = PaymentSelector(session).get_row(payment_id)
            if row is None:
                raise PaymentNotFoundError(payment_id)
            return row.tenant_id


def build_rent_payment_service(
    config_path: Path | str | None = None,
    clock: Clock | None = None,
    lock_registry: TenantLockRegistry | None = None,
    create_schema: bool = False,
) -> RentPaymentService:
    """Build a RentPaymentService from config (single entrypoint for production).

    Loads config via get_active_config(config_path), configures structured
    logging at ``logging.level``, binds the database engine to
    ``database.url`` and wires the service with ``ledger`` and
    ``concurrency`` settings.

    Args:
        config_path: Optional YAML file overlaid on the packaged defaults.
        clock: Optional clock; default SystemClock.
        lock_registry: Registry shared with other services in this process.
        create_schema: Create missing tables (development databases).

    Returns:
        RentPaymentService bound to the configured database.
    """
    from rent_config import get_active_config
    from rent_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
    from rent_kernel.logging_config import configure_logging

    config = get_active_config(Path(config_path) if config_path is not None else None)
    configure_logging(level=config.logging.level)
    init_engine_from_url(config.database.url, echo=config.database.echo)
    if create_schema:
        create_tables()
    return RentPaymentService(
        session_factory=get_session_factory(),
        clock=clock,
        lock_registry=lock_registry,
        config=config,
    )
