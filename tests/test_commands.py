from pathlib import Path

import pytest

from packing_tracker.commands import CommandResult, CommandSurface
from packing_tracker.config import Settings, load_settings
from packing_tracker.services import PackingService


@pytest.fixture
def commands(service: PackingService) -> CommandSurface:
    return CommandSurface(service)


def test_failures_carry_error_kind(commands: CommandSurface) -> None:
    missing = commands.get_customer("missing")
    assert missing.success is False
    assert missing.error_kind == "NotFound"
    assert "missing" in missing.message

    commands.register_customer("Nord", ["p1"])
    unpacked = commands.ship_customer("Nord", "full")
    assert unpacked.error_kind == "InvalidState"

    bad_mode = commands.ship_customer("Nord", "express")
    assert bad_mode.error_kind == "InvalidState"

    assert commands.delete_archive("nope").error_kind == "NotFound"
    assert commands.archive_customer("Nord").error_kind == "InvalidState"


def test_unexpected_errors_become_io_failures(commands: CommandSurface, monkeypatch) -> None:
    def explode(*args, **kwargs):
        raise KeyError("broken index")

    monkeypatch.setattr(commands.service, "list_archives", explode)

    result = commands.list_archives()

    assert result == CommandResult(
        success=False, error_kind="IOFailure", message="listArchives failed: 'broken index'"
    )


def test_successful_commands_return_plain_data(commands: CommandSurface, packed_customer) -> None:
    customer = commands.get_customer(packed_customer.name)
    assert customer.success
    assert customer.data["pack_stage"] == "PACKED"
    assert customer.data["pack_progress"] == 100
    assert isinstance(customer.data["created_at"], str)

    archived = commands.archive_customer(packed_customer.name, operator="lead")
    assert archived.success
    archive_id = archived.data["id"]

    page = commands.list_archives(1, 10)
    assert page.data["total"] == 1
    assert page.data["items"][0]["id"] == archive_id

    detail = commands.get_archive_detail(archive_id)
    assert [entry["pack_seq"] for entry in detail.data["packages"]] == ["1", "2"]
    assert detail.data["packages"][1]["parts"][0]["part_id"] == "6e5d4"

    restored = commands.restore_archive(archive_id)
    assert restored.success
    assert restored.data["customer"]["pack_stage"] == "PACKED"
    assert "notes.txt" in restored.data["files"]

    history = commands.get_status_history(packed_customer.name)
    assert history.data[0]["pack_stage"] == "NOT_PACKED"
    assert history.data[-1]["remark"] == f"restored from archive {archive_id}"

    shipped = commands.ship_customer(packed_customer.name, "partial")
    assert shipped.data["shipment_stage"] == "PARTIAL_SHIPPED"
    assert commands.mark_not_shipped(packed_customer.name).data["shipment_stage"] == "NOT_SHIPPED"

    as_dict = shipped.as_dict()
    assert set(as_dict) == {"success", "data", "errorKind", "message"}


def test_settings_derive_paths_from_data_root(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("PACKTRACK_SUFFIX_KEY_LENGTH", "7")

    settings = load_settings(data_root=tmp_path)

    assert settings.suffix_key_length == 7
    assert settings.customers_dir == tmp_path.resolve() / "customers"
    assert settings.backup_dir == tmp_path.resolve() / "backup"
    assert settings.database_path == tmp_path.resolve() / "tracker.sqlite3"
    assert Settings(data_root=tmp_path, backup_dir=tmp_path / "elsewhere").backup_dir == (
        tmp_path / "elsewhere"
    ).resolve()


def test_empty_data_root_falls_back_to_default(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PACKTRACK_DATA_ROOT", "")

    settings = load_settings()

    assert settings.data_root == tmp_path.resolve() / "data"
    assert settings.data_root.is_absolute()
    assert settings.customers_dir == tmp_path.resolve() / "data" / "customers"
    assert settings.database_path == tmp_path.resolve() / "data" / "tracker.sqlite3"


def test_default_data_root_is_resolved(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("PACKTRACK_DATA_ROOT", raising=False)

    assert Settings().backup_dir == tmp_path.resolve() / "data" / "backup"


def test_path_like_customer_names_are_invalid(commands: CommandSurface) -> None:
    result = commands.register_customer("../outside", ["p1"])

    assert result.success is False
    assert result.error_kind == "InvalidState"


def test_restore_reports_displaced_directory(commands: CommandSurface, packed_customer) -> None:
    archive_id = commands.archive_customer(packed_customer.name).data["id"]
    working_directory = Path(packed_customer.working_directory)
    working_directory.mkdir()
    (working_directory / "stray.txt").write_text("left behind", encoding="utf-8")

    restored = commands.restore_archive(archive_id)

    displaced = Path(restored.data["displacedDirectory"])
    assert (displaced / "stray.txt").read_text(encoding="utf-8") == "left behind"
    assert commands.restore_archive(archive_id).error_kind == "InvalidState"
