# src/ekatalog/models/membership.py

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from ekatalog.models.user import User

UNSET_TIER = "N/A"


class MemberStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MembershipAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# Fields owned by the approval state machine. Upserts may not change them.
LIFECYCLE_FIELDS = (
    "member_status",
    "member_since",
    "approved_rejected_date",
    "approved_rejected_by_admin_id",
    "reject_reason",
)


class CompanyMembership(BaseModel):
    """One user's application to one company at one branch."""

    company_name: Optional[str] = None
    company_address: Optional[str] = None
    member_tier: str = UNSET_TIER
    loyalty_points: Optional[int] = Field(default=None, ge=0)
    branch_id: Optional[int] = None
    branch_name: Optional[str] = None
    member_status: MemberStatus = MemberStatus.PENDING
    member_since: Optional[datetime] = None
    last_activity_date: Optional[datetime] = None
    application_date: Optional[datetime] = None
    approved_rejected_date: Optional[datetime] = None
    approved_rejected_by_admin_id: Optional[Union[int, str]] = None
    reject_reason: Optional[str] = None

    class Config:
        extra = "allow"

    @property
    def key(self) -> tuple:
        return (self.branch_id, self.company_name)


class MemberRecord(BaseModel):
    """Storage shape of the `members` collection: companies nested per user."""

    user_id: int
    user_name: Optional[str] = None
    is_phone_verified_otp: bool = False
    companies: List[CompanyMembership] = Field(default_factory=list)

    class Config:
        extra = "allow"


class MembershipEntry(BaseModel):
    """Flat, addressable membership row keyed by (user_id, branch_id, company_name)."""

    user_id: int
    user_name: Optional[str] = None
    membership: CompanyMembership

    @property
    def key(self) -> tuple:
        return (self.user_id, self.membership.branch_id, self.membership.company_name)


class MemberEntry(BaseModel):
    """A membership paired with the identity record it belongs to."""

    user: User
    membership: CompanyMembership
    placeholder_user: bool = False

    @property
    def user_id(self) -> int:
        return self.user.id
