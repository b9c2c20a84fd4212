"""Core data structures for the packing and shipment tracker."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PackStage(str, Enum):
    """Packaging lifecycle of a customer."""

    NOT_PACKED = "NOT_PACKED"
    IN_PROGRESS = "IN_PROGRESS"
    PACKED = "PACKED"
    ARCHIVED = "ARCHIVED"


class ShipmentStage(str, Enum):
    """Shipping lifecycle of a customer, guarded by the pack stage."""

    NOT_SHIPPED = "NOT_SHIPPED"
    PARTIAL_SHIPPED = "PARTIAL_SHIPPED"
    FULL_SHIPPED = "FULL_SHIPPED"


class ShipmentMode(str, Enum):
    """Shipping command variants accepted from operators."""

    FULL = "full"
    PARTIAL = "partial"

    @property
    def stage(self) -> ShipmentStage:
        return {
            ShipmentMode.FULL: ShipmentStage.FULL_SHIPPED,
            ShipmentMode.PARTIAL: ShipmentStage.PARTIAL_SHIPPED,
        }[self]


def compute_pack_progress(packed_count: int, total_parts: int) -> int:
    """Return the packed percentage rounded half up, 0 for an empty roster."""

    if total_parts <= 0:
        return 0
    return (packed_count * 200 + total_parts) // (total_parts * 2)


@dataclass(slots=True)
class Panel:
    """A single manufactured item owned by a customer."""

    id: str
    customer_id: str
    name: str = ""
    width: float = 0.0
    height: float = 0.0
    thickness: float = 0.0
    material: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class Package:
    """A scan record produced by the packing station.

    ``part_ids`` are reported as the station saw them and may be truncated.
    Packages carry no customer reference.
    """

    pack_seq: str
    part_ids: List[str]
    pack_id: str = ""
    quantity: int = 0
    weight: float = 0.0
    packed_by: str = ""
    timestamp: Optional[datetime] = None


@dataclass(slots=True)
class StatusHistoryEntry:
    """Audit record of one lifecycle transition, covering both axes."""

    pack_stage: PackStage
    shipment_stage: ShipmentStage
    previous_pack_stage: Optional[PackStage]
    previous_shipment_stage: Optional[ShipmentStage]
    timestamp: datetime
    operator: str
    remark: str = ""
    pack_progress: int = 0
    packed_count: int = 0
    total_parts: int = 0


@dataclass(slots=True)
class Customer:
    """A manufacturing order tracked through packing and shipment.

    ``archive_ids`` lists the archive records whose ARCHIVED transition was
    stored; any other record of this customer belongs to an interrupted run.
    """

    id: str
    name: str
    working_directory: str
    address: str = ""
    pack_stage: PackStage = PackStage.NOT_PACKED
    shipment_stage: ShipmentStage = ShipmentStage.NOT_SHIPPED
    packed_count: int = 0
    total_parts: int = 0
    pack_seqs: List[str] = field(default_factory=list)
    archive_ids: List[str] = field(default_factory=list)
    status_history: List[StatusHistoryEntry] = field(default_factory=list)
    pack_date: Optional[datetime] = None
    archive_date: Optional[datetime] = None
    shipment_date: Optional[datetime] = None
    last_status_check: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def pack_progress(self) -> int:
        return compute_pack_progress(self.packed_count, self.total_parts)


@dataclass(slots=True)
class ArchiveRecord:
    """Immutable record of one archive operation."""

    id: str
    customer_id: str
    customer_name: str
    customer_address: str
    archive_date: datetime
    backup_artifact_path: str
    packages_count: int
    total_parts_count: int
    archive_user: str
    remark: str = ""


@dataclass(slots=True)
class PackageArchiveEntry:
    """Snapshot of one package attributed to an archived customer."""

    id: str
    archive_id: str
    pack_seq: str
    quantity: int = 0
    weight: float = 0.0
    created_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class PartArchiveEntry:
    """Snapshot of one part id listed in an archived package."""

    id: str
    package_entry_id: str
    part_id: str
    part_name: str = ""
    quantity: int = 1


@dataclass(slots=True)
class PackageArchiveDetail:
    entry: PackageArchiveEntry
    parts: List[PartArchiveEntry] = field(default_factory=list)


@dataclass(slots=True)
class ArchiveDetail:
    """An archive record with its nested package and part snapshots."""

    record: ArchiveRecord
    packages: List[PackageArchiveDetail] = field(default_factory=list)


__all__ = [
    "PackStage",
    "ShipmentStage",
    "ShipmentMode",
    "compute_pack_progress",
    "Panel",
    "Package",
    "StatusHistoryEntry",
    "Customer",
    "ArchiveRecord",
    "PackageArchiveEntry",
    "PartArchiveEntry",
    "PackageArchiveDetail",
    "ArchiveDetail",
    "utcnow",
]
