"""Packing-to-shipment tracker for panel manufacturing orders.

This package reconciles scan-station records against customer panel
rosters, runs the customer pack/shipment lifecycle with its audit history,
and archives and restores customer working directories as compressed
snapshots.
"""

from .commands import CommandResult, CommandSurface
from .config import Settings, load_settings
from .domain import (
    ArchiveRecord,
    Customer,
    Package,
    PackStage,
    Panel,
    ShipmentMode,
    ShipmentStage,
    StatusHistoryEntry,
)
from .errors import (
    ConflictError,
    InvalidStateError,
    IOFailureError,
    MissingArtifactError,
    NotFoundError,
    PackingError,
)
from .reconciliation import ReconciliationResult, reconcile, suffix_key
from .services import PackingService, StatusCheck

__all__ = [
    "CommandResult",
    "CommandSurface",
    "Settings",
    "load_settings",
    "ArchiveRecord",
    "Customer",
    "Package",
    "PackStage",
    "Panel",
    "ShipmentMode",
    "ShipmentStage",
    "StatusHistoryEntry",
    "PackingError",
    "NotFoundError",
    "MissingArtifactError",
    "InvalidStateError",
    "IOFailureError",
    "ConflictError",
    "ReconciliationResult",
    "reconcile",
    "suffix_key",
    "PackingService",
    "StatusCheck",
]
