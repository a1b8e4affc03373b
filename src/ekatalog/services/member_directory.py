# src/ekatalog/services/member_directory.py

"""
Directory view over loaded `users` and `members` snapshots: one entry per
membership, enriched with its user, filtered to customers.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import pydantic

from ekatalog.models.membership import MemberEntry, MemberStatus
from ekatalog.models.user import User
from ekatalog.repositories.membership_table import MembershipTable

logger = logging.getLogger(__name__)

ALL_STATUSES = "all"


class MemberDirectory:
    def __init__(self, users: Iterable[dict], members: Iterable[dict]):
        self.users: dict[int, User] = {}
        for raw in users:
            try:
                user = User.model_validate(raw)
            except pydantic.ValidationError:
                logger.debug("Ignoring malformed user record: %s", raw)
                continue
            self.users[user.id] = user

        self.entries: list[MemberEntry] = []
        for row in MembershipTable.from_records(members).rows:
            user = self.users.get(row.user_id)
            # Staff and admins may hold memberships too; the directory lists customers
            if user is not None and not user.is_customer:
                continue
            self.entries.append(
                MemberEntry(
                    user=user or User.placeholder(row.user_id, row.user_name),
                    membership=row.membership,
                    placeholder_user=user is None,
                )
            )

    @staticmethod
    def _status_of(entry: MemberEntry) -> str:
        status = entry.membership.member_status
        if isinstance(status, MemberStatus):
            return status.value
        return str(status or "none").lower()

    def filter(self, status: Optional[str] = None, search: str = "") -> list[MemberEntry]:
        """Case-insensitive status filter plus free-text search over name, phone, company and branch."""
        wanted = (status or ALL_STATUSES).strip().lower()
        q = (search or "").strip().lower()

        out = []
        for entry in self.entries:
            if wanted != ALL_STATUSES and self._status_of(entry) != wanted:
                continue
            if q:
                haystack = (
                    entry.user.name,
                    entry.user.phone,
                    entry.membership.company_name,
                    entry.user.cabang,
                    entry.membership.branch_name,
                )
                if not any(q in (value or "").lower() for value in haystack):
                    continue
            out.append(entry)
        return out

    def pending(self) -> list[MemberEntry]:
        return self.filter(status=MemberStatus.PENDING.value)

    @property
    def pending_count(self) -> int:
        return len(self.pending())
