"""Bulk admin actions over sets of creators."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from sqlalchemy.orm import Session

from affiliate_ledger.creators.service import (
    CreatorService,
    validate_commission_rate,
    validate_minimum_payout,
)
from affiliate_ledger.errors import (
    CreatorNotFoundError,
    InvalidActionError,
    InvalidInputError,
    InvalidStatusTransitionError,
)
from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.storage.export import creator_export_row, rows_to_csv
from affiliate_ledger.storage.models import CreatorStatus
from affiliate_ledger.storage.repo import CreatorRepository

logger = get_logger(__name__)


class BulkAction(str, Enum):
    """Supported bulk actions."""
    APPROVE = "approve"
    SUSPEND = "suspend"
    REACTIVATE = "reactivate"
    UPDATE_COMMISSION_RATE = "update-commission-rate"
    UPDATE_MINIMUM_PAYOUT = "update-minimum-payout"
    EXPORT = "export"


# Status a creator must be in for each status action to apply
_REQUIRED_STATUS = {
    BulkAction.APPROVE: CreatorStatus.PENDING,
    BulkAction.SUSPEND: CreatorStatus.APPROVED,
    BulkAction.REACTIVATE: CreatorStatus.SUSPENDED,
}

_TARGET_STATUS = {
    BulkAction.APPROVE: CreatorStatus.APPROVED,
    BulkAction.SUSPEND: CreatorStatus.SUSPENDED,
    BulkAction.REACTIVATE: CreatorStatus.APPROVED,
}


@dataclass
class BulkResult:
    """Outcome of a bulk action."""
    action: str
    modified_count: int = 0
    skipped_ids: list[int] = field(default_factory=list)
    export_rows: list[dict[str, Any]] = field(default_factory=list)
    csv: str | None = None


class AdminBulkOperationCoordinator:
    """Applies one admin action to many creators.

    Every creator is handled in its own savepoint. A creator whose current
    status does not allow the action is skipped; the rest of the batch still
    goes through. Inputs shared by the batch are validated before any write.
    """

    def __init__(self, session: Session):
        self.session = session
        self.service = CreatorService(session)
        self.creators = CreatorRepository(session)

    def apply(
        self,
        action: BulkAction | str,
        creator_ids: list[int],
        updates: dict[str, Any] | None = None,
        actor: str = "admin",
    ) -> BulkResult:
        try:
            action = BulkAction(action)
        except ValueError:
            raise InvalidActionError(str(action)) from None
        ids = list(dict.fromkeys(creator_ids or []))
        if not ids:
            raise InvalidInputError("Action and creator IDs required")
        updates = updates or {}

        if action == BulkAction.EXPORT:
            return self._export(ids)

        operation = self._operation(action, updates, actor)
        result = BulkResult(action=action.value)
        for creator_id in ids:
            try:
                with self.session.begin_nested():
                    operation(creator_id)
            except (CreatorNotFoundError, InvalidStatusTransitionError) as e:
                result.skipped_ids.append(creator_id)
                logger.info("bulk_member_skipped", action=action.value, creator_id=creator_id, reason=e.code)
                continue
            result.modified_count += 1

        logger.info(
            "bulk_action_applied",
            action=action.value,
            actor=actor,
            modified=result.modified_count,
            skipped=len(result.skipped_ids),
        )
        return result

    def _operation(self, action: BulkAction, updates: dict[str, Any], actor: str) -> Callable[[int], Any]:
        if action == BulkAction.UPDATE_COMMISSION_RATE:
            rate = validate_commission_rate(updates.get("commission_rate"))
            return lambda creator_id: self.service.update_profile(creator_id, commission_rate=rate)

        if action == BulkAction.UPDATE_MINIMUM_PAYOUT:
            minimum = validate_minimum_payout(updates.get("minimum_payout"))
            return lambda creator_id: self.service.update_profile(creator_id, minimum_payout=minimum)

        required = _REQUIRED_STATUS[action]
        target = _TARGET_STATUS[action]
        reason = updates.get("reason") or updates.get("notes")

        def change_status(creator_id: int) -> None:
            creator = self.service.get(creator_id)
            if creator.status != required.value:
                raise InvalidStatusTransitionError("creator", creator.status, target.value)
            self.service.transition(creator_id, target, actor, reason=reason)

        return change_status

    def _export(self, ids: list[int]) -> BulkResult:
        found = {creator.id: creator for creator in self.creators.get_many(ids)}
        rows = [creator_export_row(found[creator_id]) for creator_id in ids if creator_id in found]
        logger.info("creators_exported", count=len(rows))
        return BulkResult(
            action=BulkAction.EXPORT.value,
            skipped_ids=[creator_id for creator_id in ids if creator_id not in found],
            export_rows=rows,
            csv=rows_to_csv(rows),
        )
