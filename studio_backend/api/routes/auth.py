from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy.orm import Session
from ...core import security
from ...core.auth import authenticate_user
from ...db.session import get_db
from ...db import models, schemas
from ...config import get_settings
from .. import deps


router = APIRouter(prefix="/auth", tags=["auth"])


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: schemas.User


@router.post("/login", response_model=TokenResponse)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    user = authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid credentials")
    settings = get_settings()
    token = security.create_access_token(
        {"sub": str(user.id), "role": user.role.value},
        timedelta(minutes=settings.jwt_expire_min),
    )
    return TokenResponse(access_token=token, user=schemas.User.model_validate(user))


@router.get("/me", response_model=schemas.User)
def me(current: models.User = Depends(deps.get_current_user)):
    return current
