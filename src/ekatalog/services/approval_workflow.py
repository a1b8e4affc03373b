# src/ekatalog/services/approval_workflow.py

"""
Confirmation flow for approving or rejecting a membership application.

The dialog blocks a reject until a reason is entered, sends the action
through the sync client (never optimistically), and reports the outcome on
the notification topic. On failure the dialog stays open so the operator
can retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ekatalog import config
from ekatalog.errors import EkatalogError, ValidationError
from ekatalog.models.membership import MembershipAction
from ekatalog.services.event_bus import EventBus
from ekatalog.services.sync_client import SyncClient
from ekatalog.services.sync_operations import ApplyMembershipAction

logger = logging.getLogger(__name__)

REASON_REQUIRED = "Reject reason is required"

SUCCESS_MESSAGES = {
    MembershipAction.APPROVE: "Applicant approved",
    MembershipAction.REJECT: "Applicant rejected",
}
FAILURE_MESSAGES = {
    MembershipAction.APPROVE: "Approve failed",
    MembershipAction.REJECT: "Reject failed",
}


@dataclass
class ApprovalTarget:
    user_id: int
    branch_id: Optional[int] = None
    company_name: Optional[str] = None
    display_name: Optional[str] = None


@dataclass
class ApprovalDialog:
    open: bool = False
    action: Optional[MembershipAction] = None
    target: Optional[ApprovalTarget] = None
    reason: str = ""
    error: Optional[str] = None
    processing: bool = False

    @property
    def reason_required(self) -> bool:
        return self.action is MembershipAction.REJECT

    @property
    def can_submit(self) -> bool:
        return self.open and not self.processing and (
            not self.reason_required or bool(self.reason.strip())
        )


class ApprovalWorkflow:
    def __init__(
        self,
        sync_client: SyncClient,
        admin_id: Any,
        bus: Optional[EventBus] = None,
        dataset: str = config.MEMBERS_COLLECTION,
    ):
        self.sync_client = sync_client
        self.admin_id = admin_id
        self.bus = bus or sync_client.bus
        self.dataset = dataset
        self.dialog = ApprovalDialog()

    def open(self, action: str | MembershipAction, target: ApprovalTarget, reason: str = "") -> ApprovalDialog:
        try:
            parsed = MembershipAction(action)
        except ValueError:
            raise ValidationError(f"invalid action: {action!r}")

        self.dialog = ApprovalDialog(open=True, action=parsed, target=target, reason=reason or "")
        return self.dialog

    def set_reason(self, reason: str) -> None:
        self.dialog.reason = reason or ""
        if self.dialog.error == REASON_REQUIRED and self.dialog.reason.strip():
            self.dialog.error = None

    def cancel(self) -> None:
        self.dialog = ApprovalDialog()

    async def confirm(self, reason: Optional[str] = None) -> Optional[dict]:
        """
        Submit the open dialog. Returns the updated membership on success and
        None when submission was blocked or failed (see `dialog.error`).
        """
        dialog = self.dialog
        if not dialog.open or dialog.target is None or dialog.action is None:
            raise ValidationError("no approval dialog is open")
        if dialog.processing:
            return None

        if reason is not None:
            self.set_reason(reason)

        if dialog.reason_required and not dialog.reason.strip():
            dialog.error = REASON_REQUIRED
            return None

        operation = ApplyMembershipAction(
            action=dialog.action.value,
            user_id=dialog.target.user_id,
            admin_id=self.admin_id,
            branch_id=dialog.target.branch_id,
            company_name=dialog.target.company_name,
            reject_reason=dialog.reason.strip() if dialog.reason_required else None,
        )

        dialog.processing = True
        dialog.error = None
        try:
            result = await self.sync_client.mutate(self.dataset, operation)
        except EkatalogError as e:
            logger.warning(
                "%s of user=%s branch=%s failed: %s",
                dialog.action.value,
                dialog.target.user_id,
                dialog.target.branch_id,
                e,
            )
            dialog.error = str(e)
            self.bus.notify("error", FAILURE_MESSAGES[dialog.action])
            return None
        finally:
            dialog.processing = False

        logger.info(
            "%s confirmed for user=%s branch=%s by admin=%s",
            dialog.action.value,
            dialog.target.user_id,
            dialog.target.branch_id,
            self.admin_id,
        )
        self.bus.notify("success", SUCCESS_MESSAGES[dialog.action])
        self.dialog = ApprovalDialog()
        return result
