# src/ekatalog/repositories/membership_repository.py

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import pydantic
from opentelemetry import trace

from ekatalog import config
from ekatalog.metrics import membership_transition_total, membership_upsert_total
from ekatalog.models.membership import CompanyMembership, MemberEntry, MembershipEntry
from ekatalog.models.user import User
from ekatalog.repositories.membership_table import MembershipTable
from ekatalog.storage.record_store import RecordStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MembershipRepository:
    """
    Domain access to company memberships.

    Every mutation is one revision-checked read-modify-write of the
    `members` collection; the actual rules live in MembershipTable.
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Callable[[], datetime] = utcnow,
        collection: str = config.MEMBERS_COLLECTION,
        users_collection: str = config.USERS_COLLECTION,
    ):
        self.store = store
        self.clock = clock
        self.collection = collection
        self.users_collection = users_collection

    def _table(self) -> MembershipTable:
        return MembershipTable.from_records(self.store.read(self.collection))

    def _mutate(self, op: Callable[[MembershipTable], Any]) -> Any:
        def _apply(records):
            table = MembershipTable.from_records(records)
            result = op(table)
            return table.to_records(), result

        return self.store.update(self.collection, _apply)

    # -------------------------------------------------------------------------
    # READ
    # -------------------------------------------------------------------------
    def records(self) -> list[dict]:
        """The nested `members` collection, as served by GET /members."""
        return self._table().to_records()

    def get(self, user_id: int) -> dict:
        return self._table().record_for(user_id)

    def entries(self) -> list[MembershipEntry]:
        return list(self._table().rows)

    def list(self) -> list[MemberEntry]:
        """
        Flatten every membership and pair it with its user. Memberships whose
        user record is missing get a placeholder user instead of disappearing.
        """
        with tracer.start_as_current_span("members.list") as span:
            users = {}
            for raw in self.store.read(self.users_collection):
                try:
                    user = User.model_validate(raw)
                except pydantic.ValidationError:
                    logger.warning("Skipping malformed user record: %s", raw)
                    continue
                users[user.id] = user

            out = []
            for row in self._table().rows:
                user = users.get(row.user_id)
                out.append(
                    MemberEntry(
                        user=user or User.placeholder(row.user_id),
                        membership=row.membership,
                        placeholder_user=user is None,
                    )
                )
            out.sort(key=lambda e: (e.user.id, str(e.membership.application_date or "")))
            span.set_attribute("members.count", len(out))
            return out

    # -------------------------------------------------------------------------
    # UPSERT
    # -------------------------------------------------------------------------
    def upsert_record(self, payload: dict) -> dict:
        """
        Create or merge a member record from a POST /members body and return
        the user's nested record after the write.
        """
        now = self.clock()

        def _op(table: MembershipTable):
            user_id, results = table.upsert(payload, now)
            return user_id, results, table.record_for(user_id)

        with tracer.start_as_current_span("members.upsert") as span:
            user_id, results, record = self._mutate(_op)
            span.set_attribute("members.user_id", user_id)

        for outcome, entry in results:
            membership_upsert_total.labels(outcome=outcome).inc()
            logger.info(
                "Membership %s: user=%s branch=%s company=%s",
                outcome,
                user_id,
                entry.membership.branch_id,
                entry.membership.company_name,
            )
        return record

    def upsert(
        self,
        user_id: Optional[int],
        membership: CompanyMembership | dict,
        *,
        user_name: Optional[str] = None,
    ) -> MembershipEntry:
        if isinstance(membership, CompanyMembership):
            membership = membership.model_dump(exclude_unset=True)
        payload = {"user_id": user_id, "user_name": user_name, "company": membership}
        now = self.clock()

        def _op(table: MembershipTable):
            _, results = table.upsert(payload, now)
            return results[0]

        with tracer.start_as_current_span("members.upsert"):
            outcome, entry = self._mutate(_op)

        membership_upsert_total.labels(outcome=outcome).inc()
        logger.info(
            "Membership %s: user=%s branch=%s company=%s",
            outcome,
            entry.user_id,
            entry.membership.branch_id,
            entry.membership.company_name,
        )
        return entry

    # -------------------------------------------------------------------------
    # APPROVE / REJECT
    # -------------------------------------------------------------------------
    def transition(
        self,
        user_id: int,
        branch_id: Optional[int],
        action: str,
        admin_id: Any,
        reject_reason: Optional[str] = None,
        company_name: Optional[str] = None,
    ) -> CompanyMembership:
        # Reject bad input before touching the store
        parsed, _ = MembershipTable.validate_action(action, reject_reason)
        now = self.clock()

        with tracer.start_as_current_span("members.transition") as span:
            span.set_attribute("members.user_id", user_id)
            span.set_attribute("members.branch_id", branch_id if branch_id is not None else -1)
            span.set_attribute("members.action", parsed.value)

            entry = self._mutate(
                lambda table: table.transition(
                    user_id=user_id,
                    branch_id=branch_id,
                    action=action,
                    admin_id=admin_id,
                    now=now,
                    reject_reason=reject_reason,
                    company_name=company_name,
                )
            )

        membership = entry.membership
        membership_transition_total.labels(action=parsed.value).inc()
        logger.info(
            "Membership %s: user=%s branch=%s by admin=%s",
            membership.member_status.value,
            user_id,
            membership.branch_id,
            admin_id,
        )
        return membership

    # -------------------------------------------------------------------------
    # DELETE
    # -------------------------------------------------------------------------
    def delete(self, user_id: int, branch_id: Optional[int] = None) -> int:
        with tracer.start_as_current_span("members.delete") as span:
            span.set_attribute("members.user_id", user_id)
            removed = self._mutate(lambda table: table.delete(user_id, branch_id))

        logger.info(
            "Deleted %d membership(s) for user=%s branch=%s",
            removed,
            user_id,
            branch_id if branch_id is not None else "*",
        )
        return removed
