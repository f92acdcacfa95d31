from typing import Optional

from pydantic import BaseModel, EmailStr


class UserOut(BaseModel):
    id: int
    name: str
    email: EmailStr
    role: Optional[str] = None
    notifications_enabled: bool

    class Config:
        from_attributes = True


class NotificationPreference(BaseModel):
    enabled: bool
