from pathlib import Path

import pytest

from packing_tracker.domain import Customer, PackStage, Panel
from packing_tracker.errors import NotFoundError
from packing_tracker.repository import DuplicateRecordError, InMemoryRepository, RecordNotFoundError
from packing_tracker.services import PackingService
from packing_tracker.storage import SQLiteRepository, TrackerDatabase


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path: Path):
    if request.param == "memory":
        yield InMemoryRepository()
        return
    database = TrackerDatabase(tmp_path / "tracker.sqlite3")
    yield database.panels
    database.close()


def test_repository_contract(repository) -> None:
    repository.add("a", Panel(id="a", customer_id="c-1"))
    repository.add("b", Panel(id="b", customer_id="c-2"))
    repository.upsert("a", Panel(id="a", customer_id="c-1", material="oak"))

    assert len(repository) == 2
    assert "a" in repository
    assert [panel.id for panel in repository.list()] == ["a", "b"]
    assert repository.get("a").material == "oak"
    assert [panel.id for panel in repository.find(lambda panel: panel.customer_id == "c-2")] == ["b"]
    assert repository.find_one(lambda panel: panel.material == "pine") is None

    with pytest.raises(DuplicateRecordError):
        repository.add("a", Panel(id="a", customer_id="c-1"))

    repository.remove("a")
    with pytest.raises(RecordNotFoundError):
        repository.get("a")
    with pytest.raises(NotFoundError):
        repository.remove("a")


def test_returned_records_are_copies(repository) -> None:
    repository.add("a", Panel(id="a", customer_id="c-1"))

    panel = repository.get("a")
    panel.material = "changed"

    assert repository.get("a").material == ""


def test_database_persists_across_connections(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "tracker.sqlite3"
    with TrackerDatabase(path) as database:
        database.customers.add(
            "c-1", Customer(id="c-1", name="Nord", working_directory="/tmp/nord")
        )

    with TrackerDatabase(path) as database:
        customer = database.customers.get("c-1")

    assert customer.name == "Nord"
    assert customer.pack_stage == PackStage.NOT_PACKED


def test_service_runs_on_sqlite_collections(settings, tmp_path: Path) -> None:
    with TrackerDatabase(tmp_path / "service.sqlite3") as database:
        service = PackingService(
            settings,
            customer_repo=database.customers,
            panel_repo=database.panels,
            archive_repo=database.archives,
            package_archive_repo=database.package_archives,
            part_archive_repo=database.part_archives,
        )
        service.register_customer("Nord", ["p1", "p2"])
        service.register_customer("Nord", ["p1", "p2", "p3"])

        assert sorted(service.panel_ids(service.get_customer("Nord").id)) == ["p1", "p2", "p3"]
        assert len(database.customers) == 1


def test_sqlite_repository_with_shared_connection(tmp_path: Path) -> None:
    with TrackerDatabase(tmp_path / "shared.sqlite3") as database:
        extra = SQLiteRepository(database.connection, "extra")
        extra.add("x", Panel(id="x", customer_id="c-1"))

        assert extra.get("x").id == "x"
        assert len(database.panels) == 0
