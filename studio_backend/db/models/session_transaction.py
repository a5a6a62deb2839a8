from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class TransactionType(str, PyEnum):
    purchase = "purchase"
    deduction = "deduction"
    topup = "topup"
    refund = "refund"
    edit = "edit"
    deactivation = "deactivation"


class SessionTransaction(Base):
    __tablename__ = "session_transactions"
    __table_args__ = (
        UniqueConstraint(
            "appointment_id",
            "transaction_type",
            name="uq_session_transaction_appointment_type",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_session_id: Mapped[int] = mapped_column(
        ForeignKey("customer_sessions.id", ondelete="CASCADE"), index=True
    )
    transaction_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType))
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    appointment_id: Mapped[int | None] = mapped_column(ForeignKey("appointments.id", ondelete="SET NULL"))
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    block = relationship("SessionBlock", back_populates="transactions")
