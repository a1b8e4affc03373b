# src/ekatalog/repositories/__init__.py
from .membership_repository import MembershipRepository
from .membership_table import MembershipTable

__all__ = [
    "MembershipRepository",
    "MembershipTable",
]
