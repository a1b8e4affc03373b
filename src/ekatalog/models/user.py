# src/ekatalog/models/user.py

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

CUSTOMER_ROLE = "Customer"


class User(BaseModel):
    """Identity record from the `users` collection."""

    id: int
    name: str
    phone: Optional[str] = None
    role: str = CUSTOMER_ROLE
    gender: Optional[str] = None
    profile_pic: Optional[str] = Field(default=None, alias="profilePic")
    cabang: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "allow"

    @classmethod
    def placeholder(cls, user_id: int, name: Optional[str] = None) -> "User":
        """Stand-in for a membership whose identity record is missing."""
        return cls(id=user_id, name=name or f"User {user_id}", role=CUSTOMER_ROLE)

    @property
    def is_customer(self) -> bool:
        return (self.role or "").lower() == CUSTOMER_ROLE.lower()
