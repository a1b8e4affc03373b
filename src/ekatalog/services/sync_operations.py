# src/ekatalog/services/sync_operations.py

"""
Mutations the sync client can send.

Each operation knows the HTTP request that performs it remotely and how to
apply the same change to a cached snapshot when the remote is unreachable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, ClassVar, Optional, Tuple

from ekatalog.repositories.membership_repository import utcnow
from ekatalog.repositories.membership_table import MembershipTable
from ekatalog.storage.record_store import apply_create, apply_delete, apply_merge

Records = list[dict]


@dataclass
class Operation:
    # Whether a transport failure may be papered over by editing the snapshot
    optimistic: ClassVar[bool] = True

    def request(self, dataset: str) -> Tuple[str, str, Optional[dict]]:
        raise NotImplementedError

    def apply_local(self, records: Records) -> Tuple[Records, Any]:
        raise NotImplementedError


# -----------------------------------------------------------------------------
# Generic collections
# -----------------------------------------------------------------------------
@dataclass
class CreateRecord(Operation):
    record: dict

    def request(self, dataset):
        return "POST", f"/{dataset}", self.record

    def apply_local(self, records):
        return apply_create(records, self.record)


@dataclass
class UpdateRecord(Operation):
    record: dict

    def request(self, dataset):
        return "PUT", f"/{dataset}", self.record

    def apply_local(self, records):
        return apply_merge(records, self.record)


@dataclass
class DeleteRecord(Operation):
    record_id: int

    def request(self, dataset):
        return "DELETE", f"/{dataset}", {"id": self.record_id}

    def apply_local(self, records):
        return apply_delete(records, self.record_id)


# -----------------------------------------------------------------------------
# Memberships
# -----------------------------------------------------------------------------
@dataclass
class UpsertMembership(Operation):
    payload: dict
    clock: Callable[[], datetime] = field(default=utcnow, repr=False)

    def request(self, dataset):
        return "POST", f"/{dataset}", self.payload

    def apply_local(self, records):
        table = MembershipTable.from_records(records)
        user_id, _ = table.upsert(self.payload, self.clock())
        return table.to_records(), table.record_for(user_id)


@dataclass
class DeleteMembership(Operation):
    user_id: int
    branch_id: Optional[int] = None

    def request(self, dataset):
        body = {"user_id": self.user_id}
        if self.branch_id is not None:
            body["branch_id"] = self.branch_id
        return "DELETE", f"/{dataset}", body

    def apply_local(self, records):
        table = MembershipTable.from_records(records)
        table.delete(self.user_id, self.branch_id)
        return table.to_records(), None


@dataclass
class ApplyMembershipAction(Operation):
    """
    Approve or reject. Never optimistic: the snapshot only changes after the
    server confirmed the write.
    """

    optimistic: ClassVar[bool] = False

    action: str
    user_id: int
    admin_id: Any
    branch_id: Optional[int] = None
    company_name: Optional[str] = None
    reject_reason: Optional[str] = None
    clock: Callable[[], datetime] = field(default=utcnow, repr=False)

    def request(self, dataset):
        body = {
            "action": self.action,
            "user_id": self.user_id,
            "admin_id": self.admin_id,
        }
        if self.branch_id is not None:
            body["branch_id"] = self.branch_id
        if self.company_name is not None:
            body["company_name"] = self.company_name
        if self.reject_reason is not None:
            body["reject_reason"] = self.reject_reason
        return "POST", f"/{dataset}/action", body

    def apply_local(self, records):
        table = MembershipTable.from_records(records)
        entry = table.transition(
            user_id=self.user_id,
            branch_id=self.branch_id,
            action=self.action,
            admin_id=self.admin_id,
            now=self.clock(),
            reject_reason=self.reject_reason,
            company_name=self.company_name,
        )
        return table.to_records(), {"user_id": entry.user_id, **entry.membership.model_dump(mode="json")}
