from datetime import datetime
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class SessionBlock(Base):
    __tablename__ = "customer_sessions"
    __table_args__ = (
        CheckConstraint("total_sessions > 0", name="ck_customer_session_total_positive"),
        CheckConstraint("remaining_sessions >= 0", name="ck_customer_session_remaining_non_negative"),
        CheckConstraint(
            "remaining_sessions <= total_sessions",
            name="ck_customer_session_remaining_within_total",
        ),
        Index(
            "ix_customer_sessions_block_order",
            "customer_id",
            "studio_id",
            "block_order",
            "is_active",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    studio_id: Mapped[int] = mapped_column(ForeignKey("studios.id", ondelete="CASCADE"))
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False)
    remaining_sessions: Mapped[int] = mapped_column(Integer, nullable=False)
    purchase_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    notes: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    block_order: Mapped[int] = mapped_column(Integer, default=1)
    block_type: Mapped[str] = mapped_column(String(32), default="standard")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    customer = relationship("User")
    studio = relationship("Studio")
    transactions = relationship(
        "SessionTransaction",
        back_populates="block",
        order_by="SessionTransaction.id",
    )
