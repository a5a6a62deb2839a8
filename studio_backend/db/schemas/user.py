from pydantic import BaseModel

from ..models.user import UserRole


class User(BaseModel):
    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    role: UserRole

    class Config:
        from_attributes = True
