"""Persistence for session blocks and their transaction trail.

Blocks of one customer at one studio are consumed in FIFO order: the lowest
``block_order`` that is active and still has sessions left is the active
block. Balance changes go through :func:`adjust_block`, a single guarded
UPDATE, so the ``0 <= remaining <= total`` invariant holds even when two
requests race for the same row.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..core import errors
from ..db import models

_FIFO_ORDER = (
    models.SessionBlock.block_order.asc(),
    models.SessionBlock.created_at.asc(),
    models.SessionBlock.id.asc(),
)


def _active_blocks_stmt(customer_id: int, studio_id: int):
    return select(models.SessionBlock).where(
        models.SessionBlock.customer_id == customer_id,
        models.SessionBlock.studio_id == studio_id,
        models.SessionBlock.is_active.is_(True),
    )


def get_active_block(
    db: Session,
    customer_id: int,
    studio_id: int,
    *,
    for_update: bool = False,
) -> models.SessionBlock | None:
    stmt = (
        _active_blocks_stmt(customer_id, studio_id)
        .where(models.SessionBlock.remaining_sessions > 0)
        .order_by(*_FIFO_ORDER)
        .limit(1)
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalars().first()


def get_refundable_block(
    db: Session,
    customer_id: int,
    studio_id: int,
) -> models.SessionBlock | None:
    """First active block (FIFO) that has room for one more session."""
    stmt = (
        _active_blocks_stmt(customer_id, studio_id)
        .where(models.SessionBlock.remaining_sessions < models.SessionBlock.total_sessions)
        .order_by(*_FIFO_ORDER)
        .limit(1)
        .with_for_update()
    )
    return db.execute(stmt).scalars().first()


def get_block(db: Session, block_id: int, *, for_update: bool = False) -> models.SessionBlock:
    stmt = select(models.SessionBlock).where(models.SessionBlock.id == block_id)
    if for_update:
        stmt = stmt.with_for_update()
    block = db.execute(stmt).scalar_one_or_none()
    if block is None:
        raise errors.NotFound("Session block not found")
    return block


def list_blocks(
    db: Session,
    customer_id: int,
    studio_id: int | None = None,
    *,
    active_only: bool = False,
) -> list[models.SessionBlock]:
    stmt = select(models.SessionBlock).where(models.SessionBlock.customer_id == customer_id)
    if studio_id is not None:
        stmt = stmt.where(models.SessionBlock.studio_id == studio_id)
    if active_only:
        stmt = stmt.where(models.SessionBlock.is_active.is_(True))
    return list(db.execute(stmt.order_by(*_FIFO_ORDER)).scalars().all())


def get_total_remaining(db: Session, customer_id: int, studio_id: int) -> int:
    total = db.scalar(
        select(func.coalesce(func.sum(models.SessionBlock.remaining_sessions), 0)).where(
            models.SessionBlock.customer_id == customer_id,
            models.SessionBlock.studio_id == studio_id,
            models.SessionBlock.is_active.is_(True),
        )
    )
    return int(total or 0)


def next_block_order(db: Session, customer_id: int, studio_id: int) -> int:
    current = db.scalar(
        select(func.coalesce(func.max(models.SessionBlock.block_order), 0)).where(
            models.SessionBlock.customer_id == customer_id,
            models.SessionBlock.studio_id == studio_id,
        )
    )
    return int(current or 0) + 1


def validate_block_values(total_sessions: int, remaining_sessions: int) -> None:
    problems = []
    if total_sessions is None or total_sessions <= 0:
        problems.append("Total sessions must be a positive number")
    if remaining_sessions is None or remaining_sessions < 0:
        problems.append("Remaining sessions cannot be negative")
    elif total_sessions is not None and remaining_sessions > total_sessions:
        problems.append("Remaining sessions cannot exceed total sessions")
    if problems:
        raise errors.ValidationError(problems)


def create_block(
    db: Session,
    *,
    customer_id: int,
    studio_id: int,
    total_sessions: int,
    remaining_sessions: int | None = None,
    notes: str | None = None,
    block_type: str = "standard",
    purchase_date: datetime | None = None,
) -> models.SessionBlock:
    if remaining_sessions is None:
        remaining_sessions = total_sessions
    validate_block_values(total_sessions, remaining_sessions)
    block = models.SessionBlock(
        customer_id=customer_id,
        studio_id=studio_id,
        total_sessions=total_sessions,
        remaining_sessions=remaining_sessions,
        notes=notes,
        is_active=True,
        block_order=next_block_order(db, customer_id, studio_id),
        block_type=block_type,
    )
    if purchase_date is not None:
        block.purchase_date = purchase_date
    db.add(block)
    db.flush()
    return block


def adjust_block(
    db: Session,
    block: models.SessionBlock,
    delta: int,
    *,
    grow_total: int = 0,
) -> models.SessionBlock:
    new_remaining = models.SessionBlock.remaining_sessions + delta
    new_total = models.SessionBlock.total_sessions + grow_total
    result = db.execute(
        update(models.SessionBlock)
        .where(
            models.SessionBlock.id == block.id,
            new_remaining >= 0,
            new_remaining <= new_total,
        )
        .values(
            remaining_sessions=new_remaining,
            total_sessions=new_total,
            updated_at=func.now(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise errors.InsufficientBalance(
            f"Cannot apply {delta:+d} sessions to block {block.id}"
        )
    db.refresh(block)
    return block


def record_transaction(
    db: Session,
    *,
    block: models.SessionBlock,
    transaction_type: models.TransactionType,
    amount: int,
    appointment_id: int | None = None,
    actor_id: int | None = None,
    notes: str | None = None,
) -> models.SessionTransaction:
    transaction = models.SessionTransaction(
        customer_session_id=block.id,
        transaction_type=transaction_type,
        amount=amount,
        appointment_id=appointment_id,
        created_by_user_id=actor_id,
        notes=notes,
    )
    db.add(transaction)
    db.flush()
    return transaction


def find_transaction(
    db: Session,
    appointment_id: int,
    transaction_type: models.TransactionType,
) -> models.SessionTransaction | None:
    return db.execute(
        select(models.SessionTransaction).where(
            models.SessionTransaction.appointment_id == appointment_id,
            models.SessionTransaction.transaction_type == transaction_type,
        )
    ).scalar_one_or_none()


__all__ = [
    "get_active_block",
    "get_refundable_block",
    "get_block",
    "list_blocks",
    "get_total_remaining",
    "next_block_order",
    "validate_block_values",
    "create_block",
    "adjust_block",
    "record_transaction",
    "find_transaction",
]
