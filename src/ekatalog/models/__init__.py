from .branch import Branch
from .member_tier import MemberTier
from .membership import (
    CompanyMembership,
    MemberEntry,
    MemberRecord,
    MemberStatus,
    MembershipAction,
    MembershipEntry,
)
from .user import User

__all__ = [
    "Branch",
    "CompanyMembership",
    "MemberEntry",
    "MemberRecord",
    "MemberStatus",
    "MemberTier",
    "MembershipAction",
    "MembershipEntry",
    "User",
]
