"""Demonstration script for the packing tracker."""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from pprint import pprint

from . import CommandSurface, PackingService, load_settings


def write_scan_records(working_directory: Path, packages: list) -> None:
    working_directory.mkdir(parents=True, exist_ok=True)
    (working_directory / "packages.json").write_text(json.dumps(packages), encoding="utf-8")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    data_root = Path(tempfile.mkdtemp(prefix="packing-tracker-"))
    settings = load_settings(data_root=data_root)
    settings.ensure_directories()
    service = PackingService(settings)
    commands = CommandSurface(service)

    # Roster intake
    panels = [
        "58b2e383702249219bc6744e0419a9e6",
        "3f1c0d77a2e94b5e8c3c1f3b0a77c412",
        "c9a1f0e6b2d84c0fa1e3d9b8f7a6e5d4",
    ]
    customer = service.register_customer("Werkstatt Nord", panels, address="Hafenstr. 4")
    working_directory = Path(customer.working_directory)
    (working_directory / "drawings").mkdir(parents=True, exist_ok=True)
    (working_directory / "drawings" / "cabinet.txt").write_text("Unterschrank 600", encoding="utf-8")

    # First package: the scanner reports truncated ids
    write_scan_records(
        working_directory,
        [{"packSeq": "1", "partIDs": ["9a9e6", "7c412"], "packQty": 2, "packWeight": 18.5}],
    )
    print("Nach Paket 1")
    pprint(commands.check_and_update_status(customer.name).as_dict())

    write_scan_records(
        working_directory,
        [
            {"packSeq": "1", "partIDs": ["9a9e6", "7c412"], "packQty": 2, "packWeight": 18.5},
            {"packSeq": "2", "partIDs": ["6e5d4"], "packQty": 1, "packWeight": 7.25},
        ],
    )
    print("\nNach Paket 2")
    pprint(commands.check_and_update_status(customer.name).as_dict())

    print("\nVersand")
    pprint(commands.ship_customer(customer.name, "partial").as_dict())

    archived = commands.archive_customer(customer.name, operator="M. Schneider")
    print("\nArchiviert")
    pprint(archived.as_dict())

    print("\nArchivliste")
    pprint(commands.list_archives().as_dict())

    if archived.success:
        print("\nWiederhergestellt")
        pprint(commands.restore_archive(archived.data["id"]).as_dict())

    print("\nStatushistorie")
    for entry in service.get_status_history(customer.name):
        print(
            f" - {entry.timestamp:%d.%m %H:%M:%S} {entry.pack_stage.value}/"
            f"{entry.shipment_stage.value} ({entry.operator}): {entry.remark}"
        )


if __name__ == "__main__":  # pragma: no cover - manual execution
    main()
