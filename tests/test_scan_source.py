import json
from pathlib import Path

import pytest

from packing_tracker.errors import IOFailureError
from packing_tracker.scan_source import JsonPackageSource, package_from_mapping


def test_missing_file_yields_no_packages(tmp_path: Path) -> None:
    assert JsonPackageSource().read_packages(tmp_path) == []


def test_reads_list_and_single_object(tmp_path: Path) -> None:
    source = JsonPackageSource()
    (tmp_path / "packages.json").write_text(
        json.dumps({"packSeq": 4, "partIDs": ["abcde"], "packWeight": "2.5"}), encoding="utf-8"
    )

    (single,) = source.read_packages(tmp_path)
    assert single.pack_seq == "4"
    assert single.weight == 2.5

    (tmp_path / "packages.json").write_text(
        json.dumps([{"packSeq": "1", "partIds": ["a", "b"]}, "noise", {"packSeq": "2"}]),
        encoding="utf-8",
    )
    packages = source.read_packages(tmp_path)
    assert [package.pack_seq for package in packages] == ["1", "2"]
    assert packages[0].part_ids == ["a", "b"]
    assert packages[1].part_ids == []


def test_malformed_file_is_an_io_failure(tmp_path: Path) -> None:
    (tmp_path / "scans.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(IOFailureError):
        JsonPackageSource("scans.json").read_packages(tmp_path)


def test_package_from_mapping_reads_station_fields() -> None:
    package = package_from_mapping(
        {
            "packSeq": "17",
            "packID": "PK-17",
            "partIDs": ["9a9e6", "", None],
            "packQty": "3",
            "packWeight": 12.75,
            "packUserName": "Lena",
            "packDate": "2024-05-17T09:30:00Z",
        }
    )

    assert package.pack_id == "PK-17"
    assert package.part_ids == ["9a9e6"]
    assert package.quantity == 3
    assert package.packed_by == "Lena"
    assert package.timestamp is not None and package.timestamp.tzinfo is not None
