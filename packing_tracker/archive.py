"""Backup artifacts and archive snapshots for customer working directories."""

from __future__ import annotations

import logging
import os
import re
import shutil
import uuid
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Protocol, Sequence, Tuple, Union

from .domain import Package, PackageArchiveEntry, PartArchiveEntry
from .errors import IOFailureError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class Compressor(Protocol):
    """Compression capability used by archive and restore.

    Both operations either succeed completely or leave nothing behind.
    """

    def compress(self, source_dir: PathLike, artifact_path: PathLike) -> Path:
        ...

    def decompress(self, artifact_path: PathLike, dest_dir: PathLike) -> List[str]:
        ...


def list_files(root: PathLike) -> List[str]:
    """Relative POSIX paths of every file below ``root``, sorted."""

    base = Path(root)
    return sorted(
        path.relative_to(base).as_posix() for path in base.rglob("*") if path.is_file()
    )


class ZipCompressor:
    """Deflate-compressed zip artifacts with entries relative to the source root."""

    def __init__(self, compresslevel: int = 9) -> None:
        self.compresslevel = compresslevel

    def compress(self, source_dir: PathLike, artifact_path: PathLike) -> Path:
        source = Path(source_dir)
        target = Path(artifact_path)
        if not source.is_dir():
            raise IOFailureError(f"Working directory {source} does not exist")
        partial = target.with_name(f"{target.name}.{uuid.uuid4().hex}.part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(
                partial,
                mode="w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=self.compresslevel,
            ) as archive:
                for path in sorted(source.rglob("*")):
                    archive.write(path, path.relative_to(source).as_posix())
            with zipfile.ZipFile(partial) as archive:
                broken = archive.testzip()
            if broken is not None:
                raise IOFailureError(f"Backup artifact entry {broken!r} failed verification")
            os.replace(partial, target)
        except IOFailureError:
            partial.unlink(missing_ok=True)
            raise
        except (OSError, zipfile.BadZipFile) as exc:
            partial.unlink(missing_ok=True)
            raise IOFailureError(f"Unable to compress {source}: {exc}") from exc
        logger.info("Wrote backup artifact %s (%d bytes)", target, target.stat().st_size)
        return target

    def decompress(self, artifact_path: PathLike, dest_dir: PathLike) -> List[str]:
        artifact = Path(artifact_path)
        dest = Path(dest_dir)
        if dest.exists():
            raise IOFailureError(f"Restore target {dest} already exists")
        staging = dest.with_name(f"{dest.name}.{uuid.uuid4().hex}.restoring")
        try:
            staging.mkdir(parents=True)
            root = staging.resolve()
            with zipfile.ZipFile(artifact) as archive:
                for member in archive.infolist():
                    resolved = (staging / member.filename).resolve()
                    if resolved != root and root not in resolved.parents:
                        raise IOFailureError(
                            f"Backup artifact entry {member.filename!r} escapes the target directory"
                        )
                archive.extractall(staging)
            os.replace(staging, dest)
        except IOFailureError:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        except (OSError, zipfile.BadZipFile) as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise IOFailureError(f"Unable to extract {artifact}: {exc}") from exc
        return list_files(dest)


_UNSAFE_NAME = re.compile(r"[^\w.-]+")


def backup_artifact_name(customer_name: str, moment: datetime) -> str:
    """File name for a customer's backup artifact taken at ``moment``."""

    safe_name = _UNSAFE_NAME.sub("_", customer_name).strip("._") or "customer"
    return f"{safe_name}_{moment.strftime('%Y%m%dT%H%M%S%f')}.zip"


def unique_artifact_path(backup_dir: PathLike, customer_name: str, moment: datetime) -> Path:
    """Artifact path that does not collide with an existing backup."""

    directory = Path(backup_dir)
    stem = Path(backup_artifact_name(customer_name, moment)).stem
    candidate = directory / f"{stem}.zip"
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem}-{counter}.zip"
        counter += 1
    return candidate


def build_archive_entries(
    archive_id: str,
    packages: Sequence[Package],
    id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> Tuple[List[PackageArchiveEntry], List[PartArchiveEntry]]:
    """Snapshot packages and their part ids for an archive record."""

    package_entries: List[PackageArchiveEntry] = []
    part_entries: List[PartArchiveEntry] = []
    for package in packages:
        entry = PackageArchiveEntry(
            id=id_factory(),
            archive_id=archive_id,
            pack_seq=package.pack_seq,
            quantity=package.quantity,
            weight=package.weight,
        )
        package_entries.append(entry)
        for part_id in package.part_ids:
            part_entries.append(
                PartArchiveEntry(id=id_factory(), package_entry_id=entry.id, part_id=part_id)
            )
    return package_entries, part_entries


def count_parts(packages: Sequence[Package]) -> int:
    return sum(len(package.part_ids) for package in packages)


__all__ = [
    "Compressor",
    "ZipCompressor",
    "list_files",
    "backup_artifact_name",
    "unique_artifact_path",
    "build_archive_entries",
    "count_parts",
]
