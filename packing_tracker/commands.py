"""Command surface offered to the operator shell.

Every command returns a :class:`CommandResult`. Domain failures become
failure results carrying the error kind; nothing is raised to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from .domain import ArchiveDetail, Customer
from .errors import IOFailureError, PackingError
from .services import ArchivePage, PackingService, RestoreResult, StatusCheck

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CommandResult:
    success: bool
    data: Any = None
    error_kind: Optional[str] = None
    message: str = ""

    @classmethod
    def ok(cls, data: Any = None, message: str = "") -> "CommandResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def failure(cls, kind: str, message: str) -> "CommandResult":
        return cls(success=False, error_kind=kind, message=message)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "errorKind": self.error_kind,
            "message": self.message,
        }


def json_safe(value: Any) -> Any:
    """Convert records into JSON-compatible structures."""

    if value is None or isinstance(value, (bool, int, float, str)) and not isinstance(value, Enum):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Customer):
        payload = json_safe(asdict(value))
        payload["pack_progress"] = value.pack_progress
        return payload
    if is_dataclass(value) and not isinstance(value, type):
        return json_safe(asdict(value))
    if isinstance(value, dict):
        return {str(key): json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_safe(item) for item in value]
    return str(value)


def _status_payload(check: StatusCheck) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"customer": json_safe(check.customer), "changed": check.changed}
    if check.result is not None:
        payload["matchedPartIds"] = list(check.result.matched_part_ids)
        payload["unmatchedPartIds"] = list(check.result.unmatched_part_ids)
    return payload


def _page_payload(page: ArchivePage) -> Dict[str, Any]:
    return {
        "items": json_safe(page.items),
        "total": page.total,
        "page": page.page,
        "pageSize": page.page_size,
        "hasNextPage": page.has_next_page,
    }


def _detail_payload(detail: ArchiveDetail) -> Dict[str, Any]:
    payload = json_safe(detail.record)
    payload["packages"] = [
        {**json_safe(package.entry), "parts": json_safe(package.parts)}
        for package in detail.packages
    ]
    return payload


def _restore_payload(result: RestoreResult) -> Dict[str, Any]:
    return {
        "customer": json_safe(result.customer),
        "archiveId": result.archive_id,
        "workingDirectory": result.working_directory,
        "files": list(result.files),
        "displacedDirectory": result.displaced_directory,
    }


class CommandSurface:
    """Wraps :class:`PackingService` calls into discriminated results."""

    def __init__(self, service: PackingService) -> None:
        self.service = service

    def _run(self, command: str, action: Callable[[], Any], message: str = "") -> CommandResult:
        try:
            data = action()
        except PackingError as exc:
            logger.warning("%s failed (%s): %s", command, exc.kind, exc)
            return CommandResult.failure(exc.kind, str(exc))
        except ValueError as exc:
            logger.warning("%s rejected: %s", command, exc)
            return CommandResult.failure("InvalidState", str(exc))
        except Exception as exc:
            logger.exception("%s failed unexpectedly", command)
            return CommandResult.failure(IOFailureError.kind, f"{command} failed: {exc}")
        return CommandResult.ok(data, message)

    def register_customer(
        self,
        name: str,
        panel_ids: Sequence[str],
        working_directory: Optional[str] = None,
        address: str = "",
    ) -> CommandResult:
        return self._run(
            "registerCustomer",
            lambda: json_safe(
                self.service.register_customer(
                    name, list(panel_ids), working_directory=working_directory, address=address
                )
            ),
            f"Customer {name} registered",
        )

    def get_customer(self, name: str) -> CommandResult:
        return self._run("getCustomer", lambda: json_safe(self.service.get_customer(name)))

    def get_status_history(self, name: str) -> CommandResult:
        return self._run(
            "getStatusHistory", lambda: json_safe(self.service.get_status_history(name))
        )

    def check_and_update_status(self, name: str, operator: Optional[str] = None) -> CommandResult:
        return self._run(
            "checkAndUpdateStatus",
            lambda: _status_payload(self.service.check_and_update_status(name, operator=operator)),
        )

    def archive_customer(
        self, name: str, operator: Optional[str] = None, remark: str = ""
    ) -> CommandResult:
        return self._run(
            "archiveCustomer",
            lambda: json_safe(self.service.archive_customer(name, operator=operator, remark=remark)),
            f"Customer {name} archived",
        )

    def ship_customer(
        self,
        name: str,
        mode: str = "full",
        operator: Optional[str] = None,
        remark: str = "",
    ) -> CommandResult:
        return self._run(
            "shipCustomer",
            lambda: json_safe(
                self.service.ship_customer(name, mode, operator=operator, remark=remark)
            ),
            f"Customer {name} shipped",
        )

    def mark_not_shipped(
        self, name: str, operator: Optional[str] = None, remark: str = ""
    ) -> CommandResult:
        return self._run(
            "markNotShipped",
            lambda: json_safe(
                self.service.mark_not_shipped(name, operator=operator, remark=remark)
            ),
            f"Customer {name} marked not shipped",
        )

    def restore_archive(self, archive_id: str, operator: Optional[str] = None) -> CommandResult:
        return self._run(
            "restoreArchive",
            lambda: _restore_payload(self.service.restore_archive(archive_id, operator=operator)),
            f"Archive {archive_id} restored",
        )

    def delete_archive(self, archive_id: str) -> CommandResult:
        return self._run(
            "deleteArchive",
            lambda: json_safe(self.service.delete_archive(archive_id)),
            f"Archive {archive_id} deleted",
        )

    def list_archives(self, page: int = 1, page_size: int = 20) -> CommandResult:
        return self._run(
            "listArchives", lambda: _page_payload(self.service.list_archives(page, page_size))
        )

    def get_archive_detail(self, archive_id: str) -> CommandResult:
        return self._run(
            "getArchiveDetail",
            lambda: _detail_payload(self.service.get_archive_detail(archive_id)),
        )


__all__ = ["CommandResult", "CommandSurface", "json_safe"]
