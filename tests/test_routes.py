from __future__ import annotations

from contextlib import contextmanager

import pytest
from fastapi import HTTPException

from familytree import main
from familytree.routes import export as export_routes
from familytree.routes import families as families_routes


@pytest.fixture()
def routed_db(monkeypatch, tree_db):
    @contextmanager
    def _fake_db_conn():
        yield tree_db

    monkeypatch.setattr(families_routes, "db_conn", _fake_db_conn)
    monkeypatch.setattr(export_routes, "db_conn", _fake_db_conn)
    return tree_db


def test_family_tree_payload(routed_db) -> None:
    payload = families_routes.get_family_tree(family_id="F1", requester_id="A")

    assert payload["id"] == "F1"
    assert payload["name"] == "Alpha"
    root = payload["roots"][0]
    assert root["id"] == "A"
    # Generation 0 must survive compaction.
    assert root["generation"] == 0
    assert [c["id"] for c in root["children"]] == ["B", "C"]
    assert root["children"][0]["spouses"][0]["id"] == "D"


@pytest.mark.parametrize(
    ("family_id", "requester_id", "status"),
    [("F2", "A", 403), ("F9", "A", 404)],
)
def test_family_tree_errors_map_to_http(routed_db, family_id, requester_id, status) -> None:
    with pytest.raises(HTTPException) as exc:
        families_routes.get_family_tree(family_id=family_id, requester_id=requester_id)
    assert exc.value.status_code == status


def test_family_statistics_route(routed_db) -> None:
    stats = families_routes.get_family_statistics(family_id="F1", requester_id="A")
    assert stats["total_members"] == 4
    assert stats["total_families"] == 2


def test_folder_tree_data_lists_visible_families(routed_db) -> None:
    payload = export_routes.folder_tree_data(scope="all-families", family_id=None, requester_id="A")
    assert [f["name"] for f in payload["families"]] == ["Alpha", "Gamma"]
    assert [m["name"] for m in payload["members_list"]] == ["Anna", "Bert", "Carl", "Dora", "Zed"]


def test_export_family_data_returns_attachment(routed_db) -> None:
    resp = export_routes.export_family_data(payload={"format": "csv"}, requester_id="B")

    assert resp.media_type == "text/csv; charset=utf-8"
    disposition = resp.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="family-tree-tabular-')
    assert disposition.endswith('.csv"')
    assert b'"Alpha","Bert","member",1' in resp.body


def test_export_family_data_rejects_bad_format_without_db(monkeypatch) -> None:
    def _no_db():
        raise AssertionError("database must not be opened")

    monkeypatch.setattr(export_routes, "db_conn", _no_db)
    with pytest.raises(HTTPException) as exc:
        export_routes.export_family_data(payload={"format": "xml"}, requester_id="B")
    assert exc.value.status_code == 400


def test_export_family_data_denied(routed_db) -> None:
    with pytest.raises(HTTPException) as exc:
        export_routes.export_family_data(
            payload={"format": "tabular", "scope": "selected-families", "familyIds": ["F4"]},
            requester_id="B",
        )
    assert exc.value.status_code == 403


def test_app_registers_routes() -> None:
    paths = {route.path for route in main.app.routes}
    assert {
        "/health",
        "/families/{family_id}/tree",
        "/families/{family_id}/statistics",
        "/export/folder-tree-data",
        "/export/family-data",
    } <= paths
    assert main.health() == {"ok": "true"}
