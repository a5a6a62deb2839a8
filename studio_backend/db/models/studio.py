from datetime import datetime
from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class Studio(Base):
    __tablename__ = "studios"
    __table_args__ = (
        CheckConstraint("machine_count > 0", name="ck_studio_machine_count_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    machine_count: Mapped[int] = mapped_column(Integer, default=1)
    cancellation_advance_hours: Mapped[int] = mapped_column(Integer, default=48)
    postponement_advance_hours: Mapped[int] = mapped_column(Integer, default=48)
    max_advance_booking_days: Mapped[int] = mapped_column(Integer, default=30)
    settings_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    owner = relationship("User")
    appointment_types = relationship("AppointmentType", back_populates="studio")
