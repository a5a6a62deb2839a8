from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core import errors
from ..db import models
from ..db.session import atomic
from . import session_store

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LedgerResult:
    session_id: int
    transaction_id: int
    remaining_sessions: int
    total_sessions: int
    block_order: int | None = None


def _result(block: models.SessionBlock, transaction: models.SessionTransaction) -> LedgerResult:
    return LedgerResult(
        session_id=block.id,
        transaction_id=transaction.id,
        remaining_sessions=block.remaining_sessions,
        total_sessions=block.total_sessions,
        block_order=block.block_order,
    )


def _require_positive(count: int, label: str = "Session count") -> None:
    if not isinstance(count, int) or isinstance(count, bool) or count <= 0:
        raise errors.ValidationError(f"{label} must be a positive integer")


def get_active_session(db: Session, customer_id: int, studio_id: int) -> models.SessionBlock | None:
    return session_store.get_active_block(db, customer_id, studio_id)


def deduct_session(
    db: Session,
    *,
    customer_id: int,
    studio_id: int,
    appointment_id: int | None,
    actor_id: int | None,
    notes: str | None = None,
) -> LedgerResult:
    """Take one session from the customer's active block for an appointment."""

    try:
        with atomic(db):
            block = session_store.get_active_block(db, customer_id, studio_id, for_update=True)
            if appointment_id is not None and session_store.find_transaction(
                db, appointment_id, models.TransactionType.deduction
            ):
                raise errors.DuplicateDeduction(
                    f"A session was already deducted for appointment {appointment_id}"
                )
            if block is None or block.remaining_sessions <= 0:
                raise errors.NoActiveSessions("No active sessions available for deduction")
            session_store.adjust_block(db, block, -1)
            transaction = session_store.record_transaction(
                db,
                block=block,
                transaction_type=models.TransactionType.deduction,
                amount=-1,
                appointment_id=appointment_id,
                actor_id=actor_id,
                notes=notes or "Session deducted for completed appointment",
            )
            result = _result(block, transaction)
    except IntegrityError as exc:
        # uq_session_transaction_appointment_type: a concurrent deduction won
        raise errors.DuplicateDeduction(
            f"A session was already deducted for appointment {appointment_id}"
        ) from exc
    db.commit()
    logger.info(
        "Session deducted",
        extra={
            "customer_id": customer_id,
            "studio_id": studio_id,
            "appointment_id": appointment_id,
            "remaining_sessions": result.remaining_sessions,
        },
    )
    return result


def add_sessions(
    db: Session,
    *,
    customer_id: int,
    studio_id: int,
    count: int,
    actor_id: int | None,
    notes: str | None = None,
) -> LedgerResult:
    """Top up the active block, or open the first block when there is none."""

    _require_positive(count)
    with atomic(db):
        block = session_store.get_active_block(db, customer_id, studio_id, for_update=True)
        if block is None:
            block = session_store.create_block(
                db,
                customer_id=customer_id,
                studio_id=studio_id,
                total_sessions=count,
                notes=notes,
            )
            transaction_type = models.TransactionType.purchase
        else:
            session_store.adjust_block(db, block, count, grow_total=count)
            transaction_type = models.TransactionType.topup
        transaction = session_store.record_transaction(
            db,
            block=block,
            transaction_type=transaction_type,
            amount=count,
            actor_id=actor_id,
            notes=notes or f"Added {count} sessions",
        )
        result = _result(block, transaction)
    db.commit()
    logger.info(
        "Sessions added",
        extra={
            "customer_id": customer_id,
            "studio_id": studio_id,
            "transaction_type": transaction_type.value,
            "count": count,
        },
    )
    return result


def add_session_block(
    db: Session,
    *,
    customer_id: int,
    studio_id: int,
    count: int,
    actor_id: int | None,
    notes: str | None = None,
    block_type: str = "standard",
) -> LedgerResult:
    """Queue a separate block behind the existing ones."""

    _require_positive(count)
    with atomic(db):
        block = session_store.create_block(
            db,
            customer_id=customer_id,
            studio_id=studio_id,
            total_sessions=count,
            notes=notes or f"Session block ({count} sessions)",
            block_type=block_type,
        )
        transaction = session_store.record_transaction(
            db,
            block=block,
            transaction_type=models.TransactionType.purchase,
            amount=count,
            actor_id=actor_id,
            notes=notes or f"Added {count} session block",
        )
        result = _result(block, transaction)
    db.commit()
    return result


def refund_session(
    db: Session,
    *,
    customer_id: int,
    studio_id: int,
    appointment_id: int | None,
    actor_id: int | None,
    notes: str | None = None,
) -> LedgerResult:
    """Give one session back, preferably to the block it was taken from."""

    try:
        with atomic(db):
            block = None
            if appointment_id is not None:
                if session_store.find_transaction(db, appointment_id, models.TransactionType.refund):
                    raise errors.DuplicateRefund(
                        f"A session was already refunded for appointment {appointment_id}"
                    )
                deduction = session_store.find_transaction(
                    db, appointment_id, models.TransactionType.deduction
                )
                if deduction is not None:
                    block = session_store.get_block(
                        db, deduction.customer_session_id, for_update=True
                    )
            if block is None:
                block = session_store.get_refundable_block(db, customer_id, studio_id)
            if block is None:
                raise errors.NoActiveSessions("No session block available for refund")
            session_store.adjust_block(db, block, 1)
            transaction = session_store.record_transaction(
                db,
                block=block,
                transaction_type=models.TransactionType.refund,
                amount=1,
                appointment_id=appointment_id,
                actor_id=actor_id,
                notes=notes or "Session refunded",
            )
            result = _result(block, transaction)
    except IntegrityError as exc:
        raise errors.DuplicateRefund(
            f"A session was already refunded for appointment {appointment_id}"
        ) from exc
    db.commit()
    logger.info(
        "Session refunded",
        extra={"appointment_id": appointment_id, "session_id": result.session_id},
    )
    return result


def refund_sessions(
    db: Session,
    *,
    customer_id: int,
    studio_id: int,
    count: int,
    actor_id: int | None,
    block_id: int | None = None,
    notes: str | None = None,
) -> LedgerResult:
    """Manual refund by staff; the amount is capped so the block never exceeds its total."""

    _require_positive(count, "Sessions to refund")
    with atomic(db):
        if block_id is not None:
            block = session_store.get_block(db, block_id, for_update=True)
            if block.customer_id != customer_id or block.studio_id != studio_id:
                raise errors.NotFound("Session block not found")
        else:
            block = session_store.get_refundable_block(db, customer_id, studio_id)
        if block is None:
            raise errors.NoActiveSessions("No session block found for refund")
        refunded = min(count, block.total_sessions - block.remaining_sessions)
        if refunded <= 0:
            raise errors.InsufficientBalance("Session block is already full")
        session_store.adjust_block(db, block, refunded)
        transaction = session_store.record_transaction(
            db,
            block=block,
            transaction_type=models.TransactionType.refund,
            amount=refunded,
            actor_id=actor_id,
            notes=notes or f"Refunded {refunded} session(s)",
        )
        result = _result(block, transaction)
    db.commit()
    return result


def edit_block(
    db: Session,
    *,
    block_id: int,
    actor_id: int | None,
    total_sessions: int | None = None,
    remaining_sessions: int | None = None,
    notes: str | None = None,
) -> LedgerResult:
    with atomic(db):
        block = session_store.get_block(db, block_id, for_update=True)
        if not block.is_active:
            raise errors.InvalidTransition("Cannot edit a deactivated session block")
        new_total = block.total_sessions if total_sessions is None else total_sessions
        new_remaining = block.remaining_sessions if remaining_sessions is None else remaining_sessions
        session_store.validate_block_values(new_total, new_remaining)
        delta = new_remaining - block.remaining_sessions
        session_store.adjust_block(
            db, block, delta, grow_total=new_total - block.total_sessions
        )
        if notes is not None:
            block.notes = notes
        transaction = session_store.record_transaction(
            db,
            block=block,
            transaction_type=models.TransactionType.edit,
            amount=delta,
            actor_id=actor_id,
            notes=notes or f"Block edited: total {new_total}, remaining {new_remaining}",
        )
        result = _result(block, transaction)
    db.commit()
    return result


def deactivate_block(
    db: Session,
    *,
    block_id: int,
    actor_id: int | None,
    notes: str | None = None,
) -> LedgerResult:
    with atomic(db):
        block = session_store.get_block(db, block_id, for_update=True)
        if not block.is_active:
            raise errors.InvalidTransition("Session block is already deactivated")
        block.is_active = False
        transaction = session_store.record_transaction(
            db,
            block=block,
            transaction_type=models.TransactionType.deactivation,
            amount=0,
            actor_id=actor_id,
            notes=notes or "Session block deactivated",
        )
        result = _result(block, transaction)
    db.commit()
    return result


def list_transactions(
    db: Session,
    *,
    customer_id: int | None = None,
    studio_id: int | None = None,
    session_id: int | None = None,
    transaction_type: models.TransactionType | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    limit: int | None = 50,
) -> list[models.SessionTransaction]:
    stmt = select(models.SessionTransaction).join(models.SessionBlock)
    if customer_id is not None:
        stmt = stmt.where(models.SessionBlock.customer_id == customer_id)
    if studio_id is not None:
        stmt = stmt.where(models.SessionBlock.studio_id == studio_id)
    if session_id is not None:
        stmt = stmt.where(models.SessionTransaction.customer_session_id == session_id)
    if transaction_type is not None:
        stmt = stmt.where(models.SessionTransaction.transaction_type == transaction_type)
    if from_date is not None:
        stmt = stmt.where(
            models.SessionTransaction.created_at >= datetime.combine(from_date, time.min)
        )
    if to_date is not None:
        stmt = stmt.where(
            models.SessionTransaction.created_at <= datetime.combine(to_date, time.max)
        )
    stmt = stmt.order_by(
        models.SessionTransaction.created_at.desc(), models.SessionTransaction.id.desc()
    )
    if limit:
        stmt = stmt.limit(limit)
    return list(db.execute(stmt).scalars().all())


def session_stats(db: Session, studio_id: int, from_date: date, to_date: date) -> dict:
    tx = models.SessionTransaction
    type_col = tx.transaction_type

    def _count(kind: models.TransactionType):
        return func.coalesce(func.sum(case((type_col == kind, 1), else_=0)), 0)

    credit_types = [models.TransactionType.purchase, models.TransactionType.topup]
    row = db.execute(
        select(
            func.count(tx.id),
            _count(models.TransactionType.purchase),
            _count(models.TransactionType.topup),
            _count(models.TransactionType.deduction),
            _count(models.TransactionType.refund),
            func.coalesce(func.sum(case((type_col.in_(credit_types), tx.amount), else_=0)), 0),
            func.coalesce(
                func.sum(case((type_col == models.TransactionType.deduction, -tx.amount), else_=0)),
                0,
            ),
            func.coalesce(
                func.sum(case((type_col == models.TransactionType.refund, tx.amount), else_=0)), 0
            ),
        )
        .join(models.SessionBlock)
        .where(models.SessionBlock.studio_id == studio_id)
        .where(tx.created_at >= datetime.combine(from_date, time.min))
        .where(tx.created_at <= datetime.combine(to_date, time.max))
    ).one()
    active = db.execute(
        select(
            func.count(models.SessionBlock.id),
            func.coalesce(func.sum(models.SessionBlock.remaining_sessions), 0),
        ).where(
            models.SessionBlock.studio_id == studio_id,
            models.SessionBlock.is_active.is_(True),
        )
    ).one()
    return {
        "total_transactions": int(row[0]),
        "purchases": int(row[1]),
        "topups": int(row[2]),
        "deductions": int(row[3]),
        "refunds": int(row[4]),
        "sessions_added": int(row[5]),
        "sessions_deducted": int(row[6]),
        "sessions_refunded": int(row[7]),
        "active_sessions_count": int(active[0]),
        "total_remaining_sessions": int(active[1]),
    }


__all__ = [
    "LedgerResult",
    "get_active_session",
    "deduct_session",
    "add_sessions",
    "add_session_block",
    "refund_session",
    "refund_sessions",
    "edit_block",
    "deactivate_block",
    "list_transactions",
    "session_stats",
]
