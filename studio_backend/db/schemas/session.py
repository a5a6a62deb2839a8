from datetime import date, datetime
from pydantic import BaseModel, Field

from ..models.session_transaction import TransactionType


class SessionBlock(BaseModel):
    id: int
    customer_id: int
    studio_id: int
    total_sessions: int
    remaining_sessions: int
    purchase_date: datetime | None = None
    notes: str | None = None
    is_active: bool
    block_order: int
    block_type: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class SessionTransaction(BaseModel):
    id: int
    customer_session_id: int
    transaction_type: TransactionType
    amount: int
    appointment_id: int | None = None
    created_by_user_id: int | None = None
    notes: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class SessionTopup(BaseModel):
    session_count: int = Field(gt=0, alias="sessionCount")
    notes: str | None = None

    class Config:
        populate_by_name = True


class SessionBlockCreate(BaseModel):
    session_count: int = Field(gt=0)
    block_type: str = "standard"
    notes: str | None = None


class SessionRefund(BaseModel):
    sessions_to_refund: int = Field(ge=1, le=10)
    block_id: int | None = None
    reason: str | None = None


class SessionEdit(BaseModel):
    total_sessions: int | None = Field(default=None, gt=0)
    remaining_sessions: int | None = Field(default=None, ge=0)
    notes: str | None = None


class SessionDeactivate(BaseModel):
    notes: str | None = None


class LedgerResult(BaseModel):
    session_id: int
    transaction_id: int
    remaining_sessions: int
    total_sessions: int
    block_order: int | None = None

    class Config:
        from_attributes = True


class CustomerSessionInfo(BaseModel):
    customer_id: int
    studio_id: int
    active_session: SessionBlock | None = None
    sessions: list[SessionBlock] = []
    transactions: list[SessionTransaction] = []
    has_active_sessions: bool
    remaining_sessions: int
    total_remaining_sessions: int


class SessionHistory(BaseModel):
    session: SessionBlock
    transactions: list[SessionTransaction]


class SessionStats(BaseModel):
    total_transactions: int
    purchases: int
    topups: int
    deductions: int
    refunds: int
    sessions_added: int
    sessions_deducted: int
    sessions_refunded: int
    active_sessions_count: int
    total_remaining_sessions: int
    from_date: date
    to_date: date
