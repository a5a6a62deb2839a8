from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..db import models
from . import security


@dataclass(frozen=True, slots=True)
class Actor:
    """Who performs an operation: the authenticated user id and role."""

    user_id: int | None
    role: models.UserRole

    @property
    def is_customer(self) -> bool:
        return self.role == models.UserRole.customer


def authenticate_user(db: Session, email: str, password: str) -> models.User | None:
    user = db.query(models.User).filter_by(email=email).first()
    if not user:
        return None
    if not security.verify_password(password, user.password_hash):
        return None
    return user
