"""Service layer that implements the packing tracker's use-cases."""

from __future__ import annotations

import glob
import logging
import os
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .archive import (
    Compressor,
    ZipCompressor,
    build_archive_entries,
    count_parts,
    unique_artifact_path,
)
from .config import Settings
from .domain import (
    ArchiveDetail,
    ArchiveRecord,
    Customer,
    PackageArchiveDetail,
    PackageArchiveEntry,
    PackStage,
    Panel,
    PartArchiveEntry,
    ShipmentMode,
    StatusHistoryEntry,
    utcnow,
)
from .errors import (
    ConflictError,
    InvalidStateError,
    IOFailureError,
    MissingArtifactError,
)
from .lifecycle import CustomerLifecycle
from .locks import CustomerLockRegistry
from .reconciliation import ReconciliationResult, reconcile
from .repository import InMemoryRepository, RecordNotFoundError
from .scan_source import JsonPackageSource, PackageSource

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StatusCheck:
    """A customer after reconciliation together with the raw match result."""

    customer: Customer
    result: Optional[ReconciliationResult]
    changed: bool = False


@dataclass(slots=True)
class RestoreResult:
    """Outcome of a restore.

    ``displaced_directory`` is where a directory found at the working path
    was moved; it is left for an operator to inspect and prune.
    """

    customer: Customer
    archive_id: str
    working_directory: str
    files: List[str] = field(default_factory=list)
    displaced_directory: Optional[str] = None


@dataclass(slots=True)
class ArchivePage:
    items: List[ArchiveRecord]
    total: int
    page: int
    page_size: int

    @property
    def has_next_page(self) -> bool:
        return self.page * self.page_size < self.total


def _new_id() -> str:
    return str(uuid.uuid4())


class PackingService:
    """Facade that exposes the tracker's use-cases to clients.

    Every operation that changes a customer, and the status recompute
    triggered by ingestion, runs while holding that customer's lock.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        customer_repo: Optional[InMemoryRepository[Customer]] = None,
        panel_repo: Optional[InMemoryRepository[Panel]] = None,
        archive_repo: Optional[InMemoryRepository[ArchiveRecord]] = None,
        package_archive_repo: Optional[InMemoryRepository[PackageArchiveEntry]] = None,
        part_archive_repo: Optional[InMemoryRepository[PartArchiveEntry]] = None,
        compressor: Optional[Compressor] = None,
        package_source: Optional[PackageSource] = None,
        locks: Optional[CustomerLockRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.customers = customer_repo if customer_repo is not None else InMemoryRepository()
        self.panels = panel_repo if panel_repo is not None else InMemoryRepository()
        self.archives = archive_repo if archive_repo is not None else InMemoryRepository()
        self.package_archives = (
            package_archive_repo if package_archive_repo is not None else InMemoryRepository()
        )
        self.part_archives = (
            part_archive_repo if part_archive_repo is not None else InMemoryRepository()
        )
        self.compressor = compressor if compressor is not None else ZipCompressor()
        self.package_source = (
            package_source
            if package_source is not None
            else JsonPackageSource(self.settings.packages_file_name)
        )
        self.locks = (
            locks
            if locks is not None
            else CustomerLockRegistry(self.settings.lock_timeout_seconds)
        )
        self.lifecycle = CustomerLifecycle(
            default_operator=self.settings.default_operator, clock=clock
        )
        self._clock = clock

    # ------------------------------------------------------------------
    # Customers and panel rosters
    # ------------------------------------------------------------------
    def _find_customer(self, name: str) -> Customer:
        customer = self.customers.find_one(lambda item: item.name == name)
        if customer is None:
            raise RecordNotFoundError(f"Customer {name!r} not found")
        return customer

    def panel_ids(self, customer_id: str) -> List[str]:
        return [panel.id for panel in self.panels.find(lambda panel: panel.customer_id == customer_id)]

    def _replace_roster(self, customer_id: str, panels: Iterable[Union[Panel, str]]) -> int:
        with self.panels.locked():
            for stale in self.panels.find(lambda panel: panel.customer_id == customer_id):
                self.panels.remove(f"{customer_id}/{stale.id}")
            count = 0
            for panel in panels:
                if isinstance(panel, str):
                    panel = Panel(id=panel, customer_id=customer_id)
                else:
                    panel = Panel(
                        id=panel.id,
                        customer_id=customer_id,
                        name=panel.name,
                        width=panel.width,
                        height=panel.height,
                        thickness=panel.thickness,
                        material=panel.material,
                        attributes=dict(panel.attributes),
                    )
                self.panels.upsert(f"{customer_id}/{panel.id}", panel)
                count += 1
        return count

    def register_customer(
        self,
        name: str,
        panels: Sequence[Union[Panel, str]],
        *,
        working_directory: Optional[Union[str, Path]] = None,
        address: str = "",
    ) -> Customer:
        """Create a customer from a panel roster, or replace the roster of an existing one."""

        if not name.strip():
            raise ValueError("Customer name must not be empty")
        if "/" in name or "\\" in name or name.strip() in (".", ".."):
            raise ValueError(
                f"Customer name {name!r} must not contain path separators or be a relative path"
            )
        with self.customers.locked():
            existing = self.customers.find_one(lambda item: item.name == name)
            if existing is None:
                directory = Path(working_directory) if working_directory else self.settings.customers_dir / name
                customer = Customer(
                    id=_new_id(),
                    name=name,
                    working_directory=str(directory),
                    address=address,
                    created_at=self._clock(),
                    updated_at=self._clock(),
                )
                self.lifecycle.ensure_initial_history(customer)
                self.customers.add(customer.id, customer)
                count = self._replace_roster(customer.id, panels)
                logger.info("Registered customer %s with %d panels", name, count)
                return customer

        with self.locks.hold(existing.id, operation="roster update"):
            customer = self.customers.get(existing.id)
            if working_directory:
                customer.working_directory = str(working_directory)
            if address:
                customer.address = address
            self.lifecycle.ensure_initial_history(customer)
            customer.updated_at = self._clock()
            count = self._replace_roster(customer.id, panels)
            self.customers.upsert(customer.id, customer)
        logger.info("Replaced roster of customer %s with %d panels", name, count)
        return customer

    def get_customer(self, name: str) -> Customer:
        """Return a customer; a record without history gets its initial entry."""

        customer = self._find_customer(name)
        if not customer.status_history:
            with self.locks.hold(customer.id, operation="history seed"):
                customer = self.customers.get(customer.id)
                if self.lifecycle.ensure_initial_history(customer):
                    self.customers.upsert(customer.id, customer)
        return customer

    def list_customers(self) -> List[Customer]:
        return self.customers.list()

    def get_status_history(self, name: str) -> List[StatusHistoryEntry]:
        return list(self.get_customer(name).status_history)

    def delete_customer(self, name: str) -> None:
        """Administrative delete of a customer and its panels.

        Archive records are kept; the working directory is left on disk.
        """

        customer = self._find_customer(name)
        with self.locks.hold(customer.id, operation="customer delete"):
            with self.panels.locked():
                for panel in self.panels.find(lambda item: item.customer_id == customer.id):
                    self.panels.remove(f"{customer.id}/{panel.id}")
            self.customers.remove(customer.id)
        self.locks.forget(customer.id)
        logger.info("Deleted customer %s", name)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def _recompute(self, customer: Customer, operator: Optional[str]) -> StatusCheck:
        if customer.pack_stage == PackStage.ARCHIVED:
            return StatusCheck(customer=customer, result=None)
        self._recover_interrupted_archive(customer)
        packages = self.package_source.read_packages(customer.working_directory)
        result = reconcile(
            self.panel_ids(customer.id),
            packages,
            key_length=self.settings.suffix_key_length,
        )
        entry = self.lifecycle.apply_reconciliation(customer, result, operator=operator)
        self.customers.upsert(customer.id, customer)
        if entry is not None:
            logger.info(
                "Customer %s is now %s (%d/%d parts)",
                customer.name,
                customer.pack_stage.value,
                result.packed_count,
                result.total_parts,
            )
        return StatusCheck(customer=customer, result=result, changed=entry is not None)

    def check_and_update_status(
        self,
        name: str,
        *,
        operator: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> StatusCheck:
        """Recompute packing progress from the customer's scan records."""

        customer_id = self._find_customer(name).id
        with self.locks.hold(customer_id, timeout, operation="status check"):
            customer = self.customers.get(customer_id)
            return self._recompute(customer, operator)

    def refresh_all_statuses(self, *, operator: Optional[str] = None) -> Dict[str, StatusCheck]:
        """Recompute every non-archived customer; busy customers are skipped."""

        checks: Dict[str, StatusCheck] = {}
        for customer in self.customers.list():
            if customer.pack_stage == PackStage.ARCHIVED:
                continue
            try:
                checks[customer.name] = self.check_and_update_status(
                    customer.name, operator=operator, timeout=0
                )
            except ConflictError:
                logger.info("Skipping busy customer %s during refresh", customer.name)
            except RecordNotFoundError:
                logger.info("Customer %s disappeared during refresh", customer.name)
        return checks

    # ------------------------------------------------------------------
    # Shipment
    # ------------------------------------------------------------------
    def ship_customer(
        self,
        name: str,
        mode: Union[ShipmentMode, str] = ShipmentMode.FULL,
        *,
        operator: Optional[str] = None,
        remark: str = "",
    ) -> Customer:
        try:
            shipment_mode = ShipmentMode(mode)
        except ValueError as exc:
            raise ValueError(f"Unknown shipment mode {mode!r}") from exc
        customer_id = self._find_customer(name).id
        with self.locks.hold(customer_id, operation="ship"):
            customer = self.customers.get(customer_id)
            self.lifecycle.ship(customer, shipment_mode, operator=operator, remark=remark)
            self.customers.upsert(customer.id, customer)
        logger.info("Customer %s shipped (%s)", name, shipment_mode.value)
        return customer

    def mark_not_shipped(
        self, name: str, *, operator: Optional[str] = None, remark: str = ""
    ) -> Customer:
        customer_id = self._find_customer(name).id
        with self.locks.hold(customer_id, operation="shipment cancel"):
            customer = self.customers.get(customer_id)
            self.lifecycle.mark_not_shipped(customer, operator=operator, remark=remark)
            self.customers.upsert(customer.id, customer)
        logger.info("Customer %s marked not shipped", name)
        return customer

    # ------------------------------------------------------------------
    # Archive and restore
    # ------------------------------------------------------------------
    def _discard_archive_entries(self, archive_id: str) -> None:
        with self.package_archives.locked():
            entries = self.package_archives.find(lambda entry: entry.archive_id == archive_id)
            entry_ids = {entry.id for entry in entries}
            for part in self.part_archives.find(lambda part: part.package_entry_id in entry_ids):
                self.part_archives.remove(part.id)
            for entry in entries:
                self.package_archives.remove(entry.id)

    def _archive_entries(
        self, archive_id: str
    ) -> Tuple[List[PackageArchiveEntry], List[PartArchiveEntry]]:
        entries = self.package_archives.find(lambda entry: entry.archive_id == archive_id)
        entry_ids = {entry.id for entry in entries}
        parts = self.part_archives.find(lambda part: part.package_entry_id in entry_ids)
        return entries, parts

    def _put_back_archive(
        self,
        record: ArchiveRecord,
        package_entries: Sequence[PackageArchiveEntry],
        part_entries: Sequence[PartArchiveEntry],
    ) -> None:
        for part in part_entries:
            self.part_archives.upsert(part.id, part)
        for entry in package_entries:
            self.package_archives.upsert(entry.id, entry)
        self.archives.upsert(record.id, record)

    def _rollback_archive(self, archive_id: str, artifact: Path) -> None:
        try:
            if archive_id in self.archives:
                self.archives.remove(archive_id)
            self._discard_archive_entries(archive_id)
        finally:
            artifact.unlink(missing_ok=True)

    def _recover_interrupted_archive(self, customer: Customer) -> None:
        """Undo what an archive run left behind when it stopped before the
        ARCHIVED transition was stored.

        Archive records missing from ``customer.archive_ids`` are dropped
        with their artifacts. A customer that is not archived and has lost
        its working directory gets the newest ``<name>.<hex>.archived``
        sibling moved back.
        """

        for record in self.archives.find(
            lambda item: item.customer_id == customer.id and item.id not in customer.archive_ids
        ):
            logger.warning(
                "Dropping archive %s of customer %s left by an interrupted archive",
                record.id,
                customer.name,
            )
            self._rollback_archive(record.id, Path(record.backup_artifact_path))

        if customer.pack_stage == PackStage.ARCHIVED:
            return
        working_directory = Path(customer.working_directory)
        if working_directory.exists():
            return
        retired = sorted(
            working_directory.parent.glob(f"{glob.escape(working_directory.name)}.*.archived"),
            key=lambda path: path.stat().st_mtime,
        )
        if not retired:
            return
        try:
            os.replace(retired[-1], working_directory)
        except OSError as exc:
            raise IOFailureError(
                f"Unable to move {retired[-1]} back to {working_directory}: {exc}"
            ) from exc
        logger.warning("Moved %s back to working directory %s", retired[-1], working_directory)

    def archive_customer(
        self, name: str, *, operator: Optional[str] = None, remark: str = ""
    ) -> ArchiveRecord:
        """Snapshot a packed customer's working directory and mark it archived.

        The working directory is only removed once the backup artifact and
        the archive record are both in place. Any failure before that point
        leaves the customer, its directory and the archive store as they were.
        A run that was cut off mid-way is cleaned up by the next one.
        """

        operator = operator or self.settings.default_operator
        customer_id = self._find_customer(name).id
        with self.locks.hold(customer_id, operation="archive"):
            customer = self.customers.get(customer_id)
            self._recover_interrupted_archive(customer)
            self.lifecycle.require_packed(customer)
            working_directory = Path(customer.working_directory)
            if not working_directory.is_dir():
                raise IOFailureError(f"Working directory {working_directory} does not exist")

            packages = self.package_source.read_packages(working_directory)
            moment = self._clock()
            artifact = unique_artifact_path(self.settings.backup_dir, customer.name, moment)
            self.compressor.compress(working_directory, artifact)

            archive_id = _new_id()
            package_entries, part_entries = build_archive_entries(archive_id, packages, _new_id)
            record = ArchiveRecord(
                id=archive_id,
                customer_id=customer.id,
                customer_name=customer.name,
                customer_address=customer.address,
                archive_date=moment,
                backup_artifact_path=str(artifact),
                packages_count=len(packages),
                total_parts_count=count_parts(packages),
                archive_user=operator,
                remark=remark,
            )
            try:
                for part in part_entries:
                    self.part_archives.add(part.id, part)
                for entry in package_entries:
                    self.package_archives.add(entry.id, entry)
                self.archives.add(record.id, record)
            except Exception:
                self._rollback_archive(archive_id, artifact)
                raise

            retired = working_directory.with_name(
                f"{working_directory.name}.{uuid.uuid4().hex}.archived"
            )
            try:
                os.replace(working_directory, retired)
            except OSError as exc:
                self._rollback_archive(archive_id, artifact)
                raise IOFailureError(
                    f"Unable to release working directory {working_directory}: {exc}"
                ) from exc

            try:
                customer.archive_ids.append(archive_id)
                self.lifecycle.mark_archived(customer, operator=operator, remark=remark)
                self.customers.upsert(customer.id, customer)
            except Exception:
                os.replace(retired, working_directory)
                self._rollback_archive(archive_id, artifact)
                raise

            try:
                shutil.rmtree(retired)
            except OSError as exc:
                logger.warning("Archived working directory left at %s: %s", retired, exc)

        logger.info(
            "Archived customer %s as %s (%d packages, %d parts)",
            name,
            record.id,
            record.packages_count,
            record.total_parts_count,
        )
        return record

    def restore_archive(self, archive_id: str, *, operator: Optional[str] = None) -> RestoreResult:
        """Unpack an archive artifact into a fresh working directory.

        The archive record is kept as audit trail.
        """

        customer_id = self.archives.get(archive_id).customer_id
        with self.locks.hold(customer_id, operation="restore"):
            record = self.archives.get(archive_id)
            artifact = Path(record.backup_artifact_path)
            if not artifact.is_file():
                raise MissingArtifactError(f"Backup artifact {artifact} no longer exists")
            customer = self.customers.get(record.customer_id)
            if customer.pack_stage != PackStage.ARCHIVED:
                raise InvalidStateError(
                    f"Customer {customer.name!r} is {customer.pack_stage.value}; "
                    "only archived customers can be restored"
                )

            target = Path(customer.working_directory)
            displaced: Optional[Path] = None
            if target.exists():
                displaced = target.with_name(f"{target.name}.{uuid.uuid4().hex}.displaced")
                try:
                    os.replace(target, displaced)
                except OSError as exc:
                    raise IOFailureError(f"Unable to clear restore target {target}: {exc}") from exc
                logger.warning("Moved existing directory %s aside to %s", target, displaced)

            try:
                files = self.compressor.decompress(artifact, target)
                self.lifecycle.mark_restored(
                    customer, operator=operator, remark=f"restored from archive {record.id}"
                )
                self.customers.upsert(customer.id, customer)
            except Exception:
                shutil.rmtree(target, ignore_errors=True)
                if displaced is not None:
                    os.replace(displaced, target)
                raise

        logger.info("Restored customer %s from archive %s (%d files)", customer.name, archive_id, len(files))
        if displaced is not None:
            logger.warning(
                "Directory previously at %s kept at %s; prune it once reviewed", target, displaced
            )
        return RestoreResult(
            customer=customer,
            archive_id=archive_id,
            working_directory=str(target),
            files=files,
            displaced_directory=str(displaced) if displaced is not None else None,
        )

    def delete_archive(self, archive_id: str) -> ArchiveRecord:
        """Remove an archive record, its entries and its backup artifact."""

        customer_id = self.archives.get(archive_id).customer_id
        with self.locks.hold(customer_id, operation="archive delete"):
            record = self.archives.get(archive_id)
            package_entries, part_entries = self._archive_entries(archive_id)
            artifact = Path(record.backup_artifact_path)
            doomed: Optional[Path] = None
            if artifact.exists():
                doomed = artifact.with_name(f"{artifact.name}.deleting")
                try:
                    os.replace(artifact, doomed)
                except OSError as exc:
                    raise IOFailureError(
                        f"Unable to delete backup artifact {artifact}: {exc}"
                    ) from exc

            try:
                self.archives.remove(archive_id)
                self._discard_archive_entries(archive_id)
            except Exception:
                self._put_back_archive(record, package_entries, part_entries)
                if doomed is not None:
                    os.replace(doomed, artifact)
                raise

            if doomed is not None:
                try:
                    doomed.unlink()
                except OSError as exc:
                    logger.warning("Deleted archive %s left file %s: %s", archive_id, doomed, exc)
        logger.info("Deleted archive %s of customer %s", archive_id, record.customer_name)
        return record

    def list_archives(self, page: int = 1, page_size: int = 20) -> ArchivePage:
        page = max(1, int(page))
        page_size = max(1, int(page_size))
        records = sorted(self.archives.list(), key=lambda record: record.archive_date, reverse=True)
        start = (page - 1) * page_size
        return ArchivePage(
            items=records[start : start + page_size],
            total=len(records),
            page=page,
            page_size=page_size,
        )

    def get_archive_detail(self, archive_id: str) -> ArchiveDetail:
        record = self.archives.get(archive_id)
        entries = self.package_archives.find(lambda entry: entry.archive_id == archive_id)
        entry_ids = {entry.id for entry in entries}
        parts_by_entry: Dict[str, List[PartArchiveEntry]] = {}
        for part in self.part_archives.find(lambda part: part.package_entry_id in entry_ids):
            parts_by_entry.setdefault(part.package_entry_id, []).append(part)
        return ArchiveDetail(
            record=record,
            packages=[
                PackageArchiveDetail(entry=entry, parts=parts_by_entry.get(entry.id, []))
                for entry in entries
            ],
        )

    def archives_for_customer(self, name: str) -> List[ArchiveRecord]:
        return self.archives.find(lambda record: record.customer_name == name)


__all__ = [
    "PackingService",
    "StatusCheck",
    "RestoreResult",
    "ArchivePage",
]
