from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.orm import Session
from ..core import security
from ..core.auth import Actor
from ..db.session import get_db
from ..db import models


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> models.User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    try:
        payload = security.decode_access_token(token)
    except JWTError as exc:
        raise credentials_exception from exc
    user_id = payload.get("sub")
    if user_id is None:
        raise credentials_exception
    user = db.get(models.User, int(user_id))
    if user is None:
        raise credentials_exception
    return user


def get_current_actor(user: Annotated[models.User, Depends(get_current_user)]) -> Actor:
    return Actor(user_id=user.id, role=user.role)


def require_roles(*roles: str):
    def dependency(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        if actor.role.value not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return actor

    return dependency


def ensure_studio_access(db: Session, actor: Actor, studio_id: int) -> models.Studio:
    studio = db.get(models.Studio, studio_id)
    if studio is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Studio not found")
    if actor.role == models.UserRole.manager:
        return studio
    if actor.role == models.UserRole.studio_owner and studio.owner_id == actor.user_id:
        return studio
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


def ensure_appointment_access(
    db: Session, actor: Actor, appointment: models.Appointment
) -> None:
    if actor.is_customer:
        if appointment.customer_id != actor.user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return
    ensure_studio_access(db, actor, appointment.studio_id)
