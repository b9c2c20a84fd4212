"""Customer lifecycle state machine.

A customer moves along two independent axes, the pack stage and the
shipment stage. Every transition on either axis appends exactly one
:class:`StatusHistoryEntry` recording the before and after value of both
axes. History is only ever appended to.

The state machine mutates the ``Customer`` object it is given and leaves
persistence to the caller, which stores the customer (both axes and the new
history entry) in a single write.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from .domain import (
    Customer,
    PackStage,
    ShipmentMode,
    ShipmentStage,
    StatusHistoryEntry,
    utcnow,
)
from .errors import InvalidStateError
from .reconciliation import ReconciliationResult

logger = logging.getLogger(__name__)

SHIPPABLE_PACK_STAGES = frozenset({PackStage.PACKED, PackStage.ARCHIVED})
SHIPPED_STAGES = frozenset({ShipmentStage.PARTIAL_SHIPPED, ShipmentStage.FULL_SHIPPED})
INITIAL_REMARK = "initial state"


class CustomerLifecycle:
    """Validates and applies lifecycle transitions."""

    def __init__(
        self,
        *,
        default_operator: str = "system",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.default_operator = default_operator
        self._clock = clock

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def ensure_initial_history(self, customer: Customer) -> bool:
        """Seed the history of a customer that has none yet.

        The seed always records NOT_PACKED/NOT_SHIPPED at the customer's
        creation time, whatever stage the record currently holds. Returns
        ``True`` when an entry was added.
        """

        if customer.status_history:
            return False
        customer.status_history.append(
            StatusHistoryEntry(
                pack_stage=PackStage.NOT_PACKED,
                shipment_stage=ShipmentStage.NOT_SHIPPED,
                previous_pack_stage=None,
                previous_shipment_stage=None,
                timestamp=customer.created_at,
                operator=self.default_operator,
                remark=INITIAL_REMARK,
            )
        )
        return True

    def _transition(
        self,
        customer: Customer,
        *,
        pack_stage: Optional[PackStage] = None,
        shipment_stage: Optional[ShipmentStage] = None,
        operator: Optional[str] = None,
        remark: str = "",
    ) -> StatusHistoryEntry:
        self.ensure_initial_history(customer)
        now = self._clock()
        previous_pack = customer.pack_stage
        previous_shipment = customer.shipment_stage
        new_pack = pack_stage or previous_pack
        new_shipment = shipment_stage or previous_shipment

        customer.pack_stage = new_pack
        customer.shipment_stage = new_shipment
        if new_pack == PackStage.PACKED and customer.pack_date is None:
            customer.pack_date = now
        if new_pack == PackStage.ARCHIVED and customer.archive_date is None:
            customer.archive_date = now
        if new_shipment in SHIPPED_STAGES and customer.shipment_date is None:
            customer.shipment_date = now
        customer.updated_at = now

        if not remark:
            changes = []
            if new_pack != previous_pack:
                changes.append(f"pack stage {previous_pack.value} -> {new_pack.value}")
            if new_shipment != previous_shipment:
                changes.append(
                    f"shipment stage {previous_shipment.value} -> {new_shipment.value}"
                )
            remark = "; ".join(changes)

        entry = StatusHistoryEntry(
            pack_stage=new_pack,
            shipment_stage=new_shipment,
            previous_pack_stage=previous_pack,
            previous_shipment_stage=previous_shipment,
            timestamp=now,
            operator=operator or self.default_operator,
            remark=remark,
            pack_progress=customer.pack_progress,
            packed_count=customer.packed_count,
            total_parts=customer.total_parts,
        )
        customer.status_history.append(entry)
        logger.debug(
            "Customer %s: %s/%s -> %s/%s",
            customer.name,
            previous_pack.value,
            previous_shipment.value,
            new_pack.value,
            new_shipment.value,
        )
        return entry

    # ------------------------------------------------------------------
    # Pack stage
    # ------------------------------------------------------------------
    def apply_reconciliation(
        self,
        customer: Customer,
        result: ReconciliationResult,
        *,
        operator: Optional[str] = None,
        remark: str = "",
    ) -> Optional[StatusHistoryEntry]:
        """Commit the pack stage suggested by the reconciliation engine.

        Counts are refreshed on every call; a history entry is only appended
        when the stage actually changes. Archived customers are left alone
        because their working data lives in the backup artifact.
        """

        self.ensure_initial_history(customer)
        if customer.pack_stage == PackStage.ARCHIVED:
            return None
        customer.packed_count = result.packed_count
        customer.total_parts = result.total_parts
        customer.pack_seqs = list(result.pack_seqs)
        customer.last_status_check = self._clock()
        customer.updated_at = customer.last_status_check
        if result.pack_stage_suggestion == customer.pack_stage:
            return None
        return self._transition(
            customer,
            pack_stage=result.pack_stage_suggestion,
            operator=operator,
            remark=remark,
        )

    def mark_archived(
        self, customer: Customer, *, operator: Optional[str] = None, remark: str = ""
    ) -> StatusHistoryEntry:
        self.require_packed(customer)
        return self._transition(
            customer,
            pack_stage=PackStage.ARCHIVED,
            operator=operator,
            remark=remark or "archived",
        )

    def mark_restored(
        self, customer: Customer, *, operator: Optional[str] = None, remark: str = ""
    ) -> StatusHistoryEntry:
        if customer.pack_stage != PackStage.ARCHIVED:
            raise InvalidStateError(
                f"Customer {customer.name!r} is {customer.pack_stage.value}; "
                "only archived customers can be restored"
            )
        return self._transition(
            customer,
            pack_stage=PackStage.PACKED,
            operator=operator,
            remark=remark or "restored from archive",
        )

    @staticmethod
    def require_packed(customer: Customer) -> None:
        if customer.pack_stage != PackStage.PACKED:
            raise InvalidStateError(
                f"Customer {customer.name!r} is {customer.pack_stage.value}; "
                "only packed customers can be archived"
            )

    # ------------------------------------------------------------------
    # Shipment stage
    # ------------------------------------------------------------------
    def ship(
        self,
        customer: Customer,
        mode: ShipmentMode,
        *,
        operator: Optional[str] = None,
        remark: str = "",
    ) -> StatusHistoryEntry:
        if customer.pack_stage not in SHIPPABLE_PACK_STAGES:
            raise InvalidStateError(
                f"Customer {customer.name!r} is {customer.pack_stage.value}; "
                "customers that are not packed cannot be shipped"
            )
        target = ShipmentMode(mode).stage
        current = customer.shipment_stage
        if target == current:
            raise InvalidStateError(
                f"Customer {customer.name!r} is already {current.value}"
            )
        if current == ShipmentStage.FULL_SHIPPED:
            raise InvalidStateError(
                f"Customer {customer.name!r} is fully shipped; "
                "mark it not shipped before recording a partial shipment"
            )
        return self._transition(
            customer, shipment_stage=target, operator=operator, remark=remark
        )

    def mark_not_shipped(
        self, customer: Customer, *, operator: Optional[str] = None, remark: str = ""
    ) -> StatusHistoryEntry:
        if customer.shipment_stage == ShipmentStage.NOT_SHIPPED:
            raise InvalidStateError(f"Customer {customer.name!r} has not been shipped")
        return self._transition(
            customer,
            shipment_stage=ShipmentStage.NOT_SHIPPED,
            operator=operator,
            remark=remark or "shipment cancelled",
        )


__all__ = [
    "CustomerLifecycle",
    "SHIPPABLE_PACK_STAGES",
    "SHIPPED_STAGES",
    "INITIAL_REMARK",
]
