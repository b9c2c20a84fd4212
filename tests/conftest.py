import json
from pathlib import Path
from typing import Iterable, List, Sequence

import pytest

from packing_tracker.config import Settings
from packing_tracker.services import PackingService

PANEL_IDS = [
    "58b2e383702249219bc6744e0419a9e6",
    "3f1c0d77a2e94b5e8c3c1f3b0a77c412",
    "c9a1f0e6b2d84c0fa1e3d9b8f7a6e5d4",
]


def write_packages(working_directory: Path, packages: Iterable[dict]) -> None:
    working_directory.mkdir(parents=True, exist_ok=True)
    (working_directory / "packages.json").write_text(
        json.dumps(list(packages)), encoding="utf-8"
    )


def package(seq: str, part_ids: Sequence[str], weight: float = 1.0) -> dict:
    return {"packSeq": seq, "partIDs": list(part_ids), "packQty": len(part_ids), "packWeight": weight}


def file_set(root: Path) -> List[str]:
    return sorted(path.relative_to(root).as_posix() for path in root.rglob("*") if path.is_file())


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    value = Settings(data_root=tmp_path / "data", lock_timeout_seconds=0.05)
    value.ensure_directories()
    return value


@pytest.fixture
def service(settings: Settings) -> PackingService:
    return PackingService(settings)


@pytest.fixture
def packed_customer(service: PackingService):
    """A customer whose three panels are all covered by scan records."""

    customer = service.register_customer("Werkstatt Nord", PANEL_IDS, address="Hafenstr. 4")
    working_directory = Path(customer.working_directory)
    (working_directory / "drawings").mkdir(parents=True)
    (working_directory / "drawings" / "cabinet.txt").write_text("600 x 720", encoding="utf-8")
    (working_directory / "notes.txt").write_text("fragile", encoding="utf-8")
    write_packages(
        working_directory,
        [package("1", ["9a9e6", "7c412"], 18.5), package("2", ["6e5d4"], 7.25)],
    )
    check = service.check_and_update_status(customer.name)
    assert check.customer.pack_stage.value == "PACKED"
    return check.customer
