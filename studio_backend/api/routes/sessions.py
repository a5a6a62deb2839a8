from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from ...api import deps
from ...config import get_settings
from ...core.auth import Actor
from ...db.session import get_db
from ...db import models, schemas
from ...services import session_service, session_store

router = APIRouter(tags=["sessions"])

staff_only = deps.require_roles("manager", "studio_owner")


def _session_info(db: Session, customer_id: int, studio_id: int) -> schemas.CustomerSessionInfo:
    active = session_store.get_active_block(db, customer_id, studio_id)
    blocks = session_store.list_blocks(db, customer_id, studio_id)
    transactions = session_service.list_transactions(
        db, customer_id=customer_id, studio_id=studio_id, limit=20
    )
    return schemas.CustomerSessionInfo(
        customer_id=customer_id,
        studio_id=studio_id,
        active_session=schemas.SessionBlock.model_validate(active) if active else None,
        sessions=[schemas.SessionBlock.model_validate(block) for block in blocks],
        transactions=[schemas.SessionTransaction.model_validate(tx) for tx in transactions],
        has_active_sessions=active is not None and active.remaining_sessions > 0,
        remaining_sessions=active.remaining_sessions if active else 0,
        total_remaining_sessions=session_store.get_total_remaining(db, customer_id, studio_id),
    )


def _owned_block(db: Session, actor: Actor, block_id: int) -> models.SessionBlock:
    block = session_store.get_block(db, block_id)
    deps.ensure_studio_access(db, actor, block.studio_id)
    return block


@router.get("/customers/me/sessions", response_model=schemas.CustomerSessionInfo)
def my_sessions(
    studio_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(deps.get_current_actor),
):
    return _session_info(db, actor.user_id, studio_id)


@router.get("/customers/{customer_id}/sessions", response_model=schemas.CustomerSessionInfo)
def customer_sessions(
    customer_id: int,
    studio_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(deps.get_current_actor),
):
    if actor.is_customer:
        if customer_id != actor.user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    else:
        deps.ensure_studio_access(db, actor, studio_id)
    return _session_info(db, customer_id, studio_id)


@router.post("/customers/{customer_id}/sessions/topup", response_model=schemas.LedgerResult)
def topup_sessions(
    customer_id: int,
    studio_id: int,
    payload: schemas.SessionTopup,
    db: Session = Depends(get_db),
    actor: Actor = Depends(staff_only),
):
    deps.ensure_studio_access(db, actor, studio_id)
    allowed = get_settings().topup_sizes
    if allowed and payload.session_count not in allowed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Session count must be one of: {', '.join(str(size) for size in sorted(allowed))}",
        )
    result = session_service.add_sessions(
        db,
        customer_id=customer_id,
        studio_id=studio_id,
        count=payload.session_count,
        actor_id=actor.user_id,
        notes=payload.notes,
    )
    return schemas.LedgerResult.model_validate(result)


@router.post(
    "/customers/{customer_id}/sessions/blocks",
    response_model=schemas.LedgerResult,
    status_code=status.HTTP_201_CREATED,
)
def create_session_block(
    customer_id: int,
    studio_id: int,
    payload: schemas.SessionBlockCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(staff_only),
):
    deps.ensure_studio_access(db, actor, studio_id)
    result = session_service.add_session_block(
        db,
        customer_id=customer_id,
        studio_id=studio_id,
        count=payload.session_count,
        actor_id=actor.user_id,
        notes=payload.notes,
        block_type=payload.block_type,
    )
    return schemas.LedgerResult.model_validate(result)


@router.post("/customers/{customer_id}/sessions/refund", response_model=schemas.LedgerResult)
def refund_sessions(
    customer_id: int,
    studio_id: int,
    payload: schemas.SessionRefund,
    db: Session = Depends(get_db),
    actor: Actor = Depends(staff_only),
):
    deps.ensure_studio_access(db, actor, studio_id)
    result = session_service.refund_sessions(
        db,
        customer_id=customer_id,
        studio_id=studio_id,
        count=payload.sessions_to_refund,
        actor_id=actor.user_id,
        block_id=payload.block_id,
        notes=payload.reason,
    )
    return schemas.LedgerResult.model_validate(result)


@router.get("/sessions/{session_id}/transactions", response_model=schemas.SessionHistory)
def session_transactions(
    session_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(deps.get_current_actor),
):
    block = session_store.get_block(db, session_id)
    if actor.is_customer:
        if block.customer_id != actor.user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    else:
        deps.ensure_studio_access(db, actor, block.studio_id)
    transactions = session_service.list_transactions(db, session_id=session_id, limit=None)
    return schemas.SessionHistory(
        session=schemas.SessionBlock.model_validate(block),
        transactions=[schemas.SessionTransaction.model_validate(tx) for tx in transactions],
    )


@router.patch("/sessions/{session_id}/edit", response_model=schemas.LedgerResult)
def edit_session_block(
    session_id: int,
    payload: schemas.SessionEdit,
    db: Session = Depends(get_db),
    actor: Actor = Depends(staff_only),
):
    _owned_block(db, actor, session_id)
    result = session_service.edit_block(
        db,
        block_id=session_id,
        actor_id=actor.user_id,
        total_sessions=payload.total_sessions,
        remaining_sessions=payload.remaining_sessions,
        notes=payload.notes,
    )
    return schemas.LedgerResult.model_validate(result)


@router.patch("/sessions/{session_id}/deactivate", response_model=schemas.LedgerResult)
def deactivate_session_block(
    session_id: int,
    payload: schemas.SessionDeactivate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(staff_only),
):
    _owned_block(db, actor, session_id)
    result = session_service.deactivate_block(
        db, block_id=session_id, actor_id=actor.user_id, notes=payload.notes
    )
    return schemas.LedgerResult.model_validate(result)
