"""Readers for scan records written by the packing station."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, List, Mapping, Optional, Protocol, Union

from .domain import Package
from .errors import IOFailureError

logger = logging.getLogger(__name__)

DEFAULT_PACKAGES_FILE = "packages.json"


class PackageSource(Protocol):
    """Anything that can list the packages found in a working directory."""

    def read_packages(self, working_directory: Union[str, Path]) -> List[Package]:
        ...


def _coerce_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _coerce_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def package_from_mapping(item: Mapping[str, Any]) -> Package:
    """Build a :class:`Package` from one station record."""

    part_ids = item.get("partIDs") or item.get("partIds") or []
    if not isinstance(part_ids, list):
        part_ids = []
    return Package(
        pack_seq=str(item.get("packSeq") or ""),
        part_ids=[str(part_id) for part_id in part_ids if part_id],
        pack_id=str(item.get("packID") or ""),
        quantity=_coerce_int(item.get("packQty")),
        weight=_coerce_float(item.get("packWeight") or item.get("weight")),
        packed_by=str(item.get("packUserName") or ""),
        timestamp=_parse_timestamp(item.get("packDate")),
    )


class JsonPackageSource:
    """Reads ``packages.json`` from a customer's working directory.

    The station writes either a JSON array of package objects or, for a
    single package, the bare object.
    """

    def __init__(self, file_name: str = DEFAULT_PACKAGES_FILE) -> None:
        self.file_name = file_name

    def packages_path(self, working_directory: Union[str, Path]) -> Path:
        return Path(working_directory) / self.file_name

    def read_packages(self, working_directory: Union[str, Path]) -> List[Package]:
        path = self.packages_path(working_directory)
        if not path.exists():
            logger.debug("No scan records at %s", path)
            return []
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise IOFailureError(f"Unable to read scan records from {path}: {exc}") from exc

        if isinstance(payload, list):
            records = [item for item in payload if isinstance(item, Mapping)]
        elif isinstance(payload, Mapping):
            records = [payload]
        else:
            records = []
        return [package_from_mapping(item) for item in records]


__all__ = [
    "PackageSource",
    "JsonPackageSource",
    "package_from_mapping",
    "DEFAULT_PACKAGES_FILE",
]
