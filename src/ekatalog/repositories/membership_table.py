# src/ekatalog/repositories/membership_table.py

"""
Flat in-memory view of the `members` collection.

Storage nests each user's memberships under a `companies` array; every
domain operation here works on flat rows addressed by
(user_id, branch_id, company_name). Conversion happens only in
`from_records` / `to_records`.

The table is pure (no I/O, no clock): the repository runs it inside a
store read-modify-write, and the sync client runs the same code against a
cached snapshot, so both sides merge identically.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

import pydantic

from ekatalog.errors import NotFoundError, ValidationError
from ekatalog.models.membership import (
    LIFECYCLE_FIELDS,
    CompanyMembership,
    MemberStatus,
    MembershipAction,
    MembershipEntry,
)

logger = logging.getLogger(__name__)

COMPANY_FIELDS = tuple(CompanyMembership.model_fields)
_HEADER_FIELDS = ("user_id", "user_name", "is_phone_verified_otp")


def _coerce_id(value: Any, field: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer, got {value!r}")


def _compatible(a: Any, b: Any) -> bool:
    return a is None or b is None or a == b


def _validate_company(data: dict) -> CompanyMembership:
    try:
        return CompanyMembership.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"invalid membership: {e.errors()[0].get('msg', e)}") from e


def _load_company(raw: dict, user_id: int) -> CompanyMembership:
    """Parse a stored company; malformed rows are kept as-is rather than dropped."""
    try:
        return CompanyMembership.model_validate(raw)
    except pydantic.ValidationError:
        logger.warning("Keeping malformed membership for user_id=%s unvalidated: %s", user_id, raw)
        return CompanyMembership.model_construct(**raw)


class MembershipTable:
    def __init__(self):
        # user_id -> stored user fields other than `companies`
        self.users: dict[int, dict] = {}
        self.rows: list[MembershipEntry] = []
        # records without a usable user_id; written back untouched
        self.orphans: list[dict] = []

    # -------------------------------------------------------------------------
    # Serialization boundary
    # -------------------------------------------------------------------------
    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "MembershipTable":
        table = cls()
        for record in records:
            try:
                user_id = int(record.get("user_id"))
            except (TypeError, ValueError):
                logger.warning("Member record without a usable user_id: %s", record)
                table.orphans.append(record)
                continue

            header = {k: v for k, v in record.items() if k != "companies"}
            header["user_id"] = user_id
            table.users.setdefault(user_id, {}).update(header)

            companies = record.get("companies") or []
            if not isinstance(companies, list):
                companies = []
            for company in companies:
                if not isinstance(company, dict):
                    continue
                table.rows.append(
                    MembershipEntry(
                        user_id=user_id,
                        user_name=header.get("user_name"),
                        membership=_load_company(company, user_id),
                    )
                )
        return table

    def to_records(self) -> list[dict]:
        """Nest rows back under their users. Users left without rows are dropped."""
        out = []
        for user_id, header in self.users.items():
            companies = [
                row.membership.model_dump(mode="json")
                for row in self.rows
                if row.user_id == user_id
            ]
            if not companies:
                continue
            record = dict(header)
            record.setdefault("user_name", f"User {user_id}")
            record.setdefault("is_phone_verified_otp", False)
            record["companies"] = companies
            out.append(record)
        return out + self.orphans

    def record_for(self, user_id: int) -> dict:
        for record in self.to_records():
            if record.get("user_id") == user_id:
                return record
        raise NotFoundError(f"user {user_id} has no memberships")

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------
    def rows_for(self, user_id: int) -> list[int]:
        return [i for i, row in enumerate(self.rows) if row.user_id == user_id]

    def next_user_id(self) -> int:
        ids = list(self.users) + [row.user_id for row in self.rows]
        return max(ids, default=0) + 1

    def match(self, user_id: int, branch_id: Optional[int], company_name: Optional[str]) -> list[int]:
        """
        Indexes of the rows an incoming (branch_id, company_name) refers to.

        branch_id is tried first: same branch and a compatible company name
        (equal, or null on either side). Only when that finds nothing is the
        company name tried, with a compatible branch id.
        """
        candidates = self.rows_for(user_id)

        if branch_id is None and company_name is None:
            return [
                i for i in candidates
                if self.rows[i].membership.branch_id is None
                and self.rows[i].membership.company_name is None
            ]

        if branch_id is not None:
            hits = [
                i for i in candidates
                if self.rows[i].membership.branch_id == branch_id
                and _compatible(self.rows[i].membership.company_name, company_name)
            ]
            if len(hits) > 1 and company_name is not None:
                exact = [i for i in hits if self.rows[i].membership.company_name == company_name]
                hits = exact or hits
            if hits:
                return hits

        if company_name is not None:
            return [
                i for i in candidates
                if self.rows[i].membership.company_name == company_name
                and _compatible(self.rows[i].membership.branch_id, branch_id)
            ]

        return []

    def _select_one(self, user_id: int, branch_id: Optional[int], company_name: Optional[str]) -> int:
        candidates = self.rows_for(user_id)
        if not candidates:
            raise NotFoundError(f"user {user_id} has no memberships")

        if branch_id is None and company_name is None:
            if len(candidates) == 1:
                return candidates[0]
            raise ValidationError(
                f"user {user_id} has {len(candidates)} memberships; branch_id is required"
            )

        hits = self.match(user_id, branch_id, company_name)
        if not hits:
            raise NotFoundError(
                f"no membership for user {user_id} at branch={branch_id} company={company_name!r}"
            )
        if len(hits) > 1:
            raise ValidationError(
                f"user {user_id} has {len(hits)} memberships at branch {branch_id}; company_name is required"
            )
        return hits[0]

    # -------------------------------------------------------------------------
    # Upsert
    # -------------------------------------------------------------------------
    @staticmethod
    def incoming_companies(payload: dict) -> list[dict]:
        """
        Accepts `companies: [...]`, a single `company: {...}`, or flat company
        fields. Empty when the payload carries no company data at all.
        """
        companies = payload.get("companies")
        companies = list(companies) if isinstance(companies, list) else []
        if isinstance(payload.get("company"), dict):
            companies.append(payload["company"])
        if not companies:
            flat = {k: v for k, v in payload.items() if k in COMPANY_FIELDS}
            if flat:
                companies = [flat]
        for company in companies:
            if not isinstance(company, dict):
                raise ValidationError("each company must be an object")
        return companies

    @staticmethod
    def _strip_lifecycle(incoming: dict, current: Optional[CompanyMembership]) -> dict:
        """
        Drop lifecycle fields that restate the current value. Any real change
        to them has to go through `transition`.
        """
        cleaned = dict(incoming)
        for field in LIFECYCLE_FIELDS:
            if field not in cleaned:
                continue
            value = cleaned.pop(field)
            if value is None:
                continue
            wanted = getattr(_validate_company({field: value}), field)
            present = getattr(current, field) if current is not None else CompanyMembership.model_fields[field].default
            if wanted == present:
                continue
            raise ValidationError(f"{field} can only be changed by an approve/reject action")
        return cleaned

    def upsert(self, payload: dict, now: datetime) -> tuple[int, list[tuple[str, MembershipEntry]]]:
        """
        Create or merge a user's memberships.

        Returns (user_id, [(outcome, entry), ...]) where outcome is "merged" or
        "created" for each incoming company. A payload without company data
        only updates the header of an existing user.
        """
        user_id = _coerce_id(payload.get("user_id"), "user_id")
        if user_id is None and not payload.get("user_name"):
            raise ValidationError("missing user_name or user_id")
        if user_id is None:
            user_id = self.next_user_id()

        companies = self.incoming_companies(payload)
        if not companies and not self.rows_for(user_id):
            # a new applicant always starts with one pending membership
            companies = [{}]

        header = self.users.get(user_id)
        if header is None:
            header = {
                "user_id": user_id,
                "user_name": payload.get("user_name") or f"User {user_id}",
                "is_phone_verified_otp": bool(payload.get("is_phone_verified_otp", False)),
            }
            self.users[user_id] = header
        else:
            if payload.get("user_name"):
                header["user_name"] = payload["user_name"]
            if "is_phone_verified_otp" in payload:
                header["is_phone_verified_otp"] = bool(payload["is_phone_verified_otp"])

        results = []
        for company in companies:
            incoming = {k: v for k, v in company.items() if k not in _HEADER_FIELDS}
            if "branch_id" in incoming:
                incoming["branch_id"] = _coerce_id(incoming["branch_id"], "branch_id")
            branch_id = incoming.get("branch_id")
            company_name = incoming.get("company_name")

            hits = self.match(user_id, branch_id, company_name)
            if len(hits) > 1:
                raise ValidationError(
                    f"company at branch={branch_id} name={company_name!r} matches "
                    f"{len(hits)} memberships of user {user_id}"
                )

            if hits:
                idx = hits[0]
                current = self.rows[idx].membership
                changes = self._strip_lifecycle(incoming, current)
                merged = _validate_company({**current.model_dump(), **changes})
                self.rows[idx] = MembershipEntry(
                    user_id=user_id, user_name=header["user_name"], membership=merged
                )
                results.append(("merged", self.rows[idx]))
            else:
                changes = self._strip_lifecycle(incoming, None)
                changes.setdefault("application_date", now)
                created = _validate_company(changes)
                entry = MembershipEntry(user_id=user_id, user_name=header["user_name"], membership=created)
                self.rows.append(entry)
                results.append(("created", entry))

        for row in self.rows:
            if row.user_id == user_id:
                row.user_name = header["user_name"]

        return user_id, results

    # -------------------------------------------------------------------------
    # Approval state machine
    # -------------------------------------------------------------------------
    @staticmethod
    def validate_action(action: Any, reject_reason: Optional[str]) -> tuple[MembershipAction, Optional[str]]:
        """Checks done before any row is touched."""
        if not action:
            raise ValidationError("missing action")
        try:
            parsed = MembershipAction(action)
        except (ValueError, TypeError):
            raise ValidationError(f"invalid action: {action!r}")

        reason = None
        if parsed is MembershipAction.REJECT:
            reason = (reject_reason or "").strip()
            if not reason:
                raise ValidationError("reject_reason is required when rejecting")
        return parsed, reason

    def transition(
        self,
        *,
        user_id: int,
        branch_id: Optional[int],
        action: Any,
        admin_id: Any,
        now: datetime,
        reject_reason: Optional[str] = None,
        company_name: Optional[str] = None,
    ) -> MembershipEntry:
        parsed, reason = self.validate_action(action, reject_reason)
        branch_id = _coerce_id(branch_id, "branch_id")
        idx = self._select_one(user_id, branch_id, company_name)

        current = self.rows[idx].membership
        if parsed is MembershipAction.APPROVE:
            changes = {
                "member_status": MemberStatus.APPROVED,
                "member_since": current.member_since or now,
                "approved_rejected_date": now,
                "approved_rejected_by_admin_id": admin_id,
                "reject_reason": None,
            }
        else:
            changes = {
                "member_status": MemberStatus.REJECTED,
                "approved_rejected_date": now,
                "approved_rejected_by_admin_id": admin_id,
                "reject_reason": reason,
            }

        entry = self.rows[idx].model_copy(update={"membership": current.model_copy(update=changes)})
        self.rows[idx] = entry
        return entry

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------
    def delete(self, user_id: int, branch_id: Optional[int] = None) -> int:
        """Remove one membership (by branch) or all of a user's; returns how many."""
        branch_id = _coerce_id(branch_id, "branch_id")
        candidates = self.rows_for(user_id)
        if not candidates:
            raise NotFoundError(f"user {user_id} has no memberships")

        if branch_id is None:
            doomed = set(candidates)
        else:
            doomed = {i for i in candidates if self.rows[i].membership.branch_id == branch_id}
            if not doomed:
                raise NotFoundError(f"no membership for user {user_id} at branch {branch_id}")

        self.rows = [row for i, row in enumerate(self.rows) if i not in doomed]
        if not self.rows_for(user_id):
            self.users.pop(user_id, None)
        return len(doomed)
