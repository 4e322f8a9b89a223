"""Tests for evidence-workbench/app/api.py: FastAPI endpoints."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

_TOOL_DIR = str(Path(__file__).resolve().parent.parent.parent / "evidence-workbench")


@pytest.fixture(autouse=True)
def _fresh_workbench():
    """Re-import app.api so every test starts with an empty workbench."""
    sys.path.insert(0, _TOOL_DIR)
    for k in list(sys.modules.keys()):
        if k == "app" or k.startswith("app."):
            del sys.modules[k]
    yield
    try:
        sys.path.remove(_TOOL_DIR)
    except ValueError:
        pass


@pytest.fixture()
def client():
    from app.api import app as _app
    return TestClient(_app)


def _create_group(client, title="Payslips", section="employment", pages=0):
    group = client.post("/api/groups", json={"section": section, "title": title}).json()
    page_ids = []
    if pages:
        resp = client.post(f"/api/groups/{group['id']}/pages", json={
            "filenames": [f"{title.lower()}_{i}.pdf" for i in range(pages)],
        })
        page_ids = resp.json()["page_ids"]
    return group["id"], page_ids


# ── Catalogs ─────────────────────────────────────────────────────────────


def test_get_sections(client):
    resp = client.get("/api/sections")
    assert resp.status_code == 200
    assert resp.json()["travel"] == "Travel History"


def test_get_document_types(client):
    assert "passport" in client.get("/api/document-types").json()


# ── Groups and pages ─────────────────────────────────────────────────────


def test_create_group(client):
    resp = client.post("/api/groups", json={"section": "employment", "title": "Payslips"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["title"] == "Payslips"
    assert data["page_ids"] == []
    assert data["suggested_consumer"] == "employment"


def test_create_duplicate_group(client):
    _create_group(client, "Payslips")
    resp = client.post("/api/groups", json={"section": "employment", "title": "PAYSLIPS"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "DuplicateTitle"


def test_upload_and_list(client):
    gid, pages = _create_group(client, pages=2)
    groups = client.get("/api/groups").json()
    assert groups[0]["id"] == gid
    assert [p["id"] for p in groups[0]["pages"]] == pages


def test_upload_to_missing_group(client):
    resp = client.post("/api/groups/grp_missing/pages", json={"filenames": ["a.pdf"]})
    assert resp.status_code == 404


def test_move_page(client):
    a, a_pages = _create_group(client, "A", pages=1)
    b, _ = _create_group(client, "B", pages=1)
    resp = client.post(f"/api/pages/{a_pages[0]}/move", json={
        "from_group_id": a, "to_group_id": b, "target_index": 0,
    })
    assert resp.status_code == 200
    assert resp.json()["group_id"] == b


def test_remove_page(client):
    gid, pages = _create_group(client, pages=2)
    resp = client.delete(f"/api/pages/{pages[0]}")
    assert resp.json()["group_id"] == gid
    assert client.delete(f"/api/pages/{pages[0]}").status_code == 404


def test_reorder_groups_incomplete(client):
    a, _ = _create_group(client, "A")
    _create_group(client, "B")
    resp = client.put("/api/sections/employment/order", json={"group_ids": [a]})
    assert resp.status_code == 409


def test_merge_and_split(client):
    dest, (p3,) = _create_group(client, "A", pages=1)
    src, (p1, p2) = _create_group(client, "B", pages=2)
    merged = client.post(f"/api/groups/{src}/merge", json={"dest_id": dest}).json()
    assert merged["page_ids"] == [p3, p1, p2]

    split = client.post(f"/api/groups/{dest}/split", json={"page_ids": [p1], "title": "C"}).json()
    assert split["page_ids"] == [p1]
    assert client.post(f"/api/groups/{dest}/split", json={"page_ids": [], "title": "D"}).status_code == 400


def test_drag_page_between_groups(client):
    a, (page,) = _create_group(client, "A", pages=1)
    b, _ = _create_group(client, "B", pages=1)
    resp = client.post("/api/drag", json={
        "item_kind": "page", "item_id": page, "target_kind": "group", "target_id": b,
    })
    assert resp.status_code == 200
    data = resp.json()
    assert data["command"] == "MovePage"
    assert [g["id"] for g in data["groups"]] == [b]


def test_drag_group_across_sections(client):
    a, _ = _create_group(client, "A", section="personal")
    b, _ = _create_group(client, "B", section="financial")
    resp = client.post("/api/drag", json={
        "item_kind": "group", "item_id": a, "target_kind": "group", "target_id": b,
    })
    assert resp.status_code == 409


# ── Gated edits and confirmations ────────────────────────────────────────


def test_unbound_rename_proceeds(client):
    gid, _ = _create_group(client)
    data = client.post(f"/api/groups/{gid}/rename", json={"title": "Payslips 2024"}).json()
    assert data["outcome"] == "proceed"
    assert data["applied"] is True


def test_bound_delete_requires_confirmation(client):
    gid, _ = _create_group(client, pages=2)
    client.post(f"/api/groups/{gid}/bindings", json={"consumer": "assessment"})

    data = client.delete(f"/api/groups/{gid}").json()
    assert data["outcome"] == "confirm"
    assert data["confirmation"]["confirm_label"] == "Delete and Remove References"
    assert client.get("/api/confirmations").json()[0]["ticket"] == data["ticket"]

    accepted = client.post(f"/api/confirmations/{data['ticket']}/accept").json()
    assert accepted["applied"] is True
    assert client.get("/api/groups").json() == []
    assert client.get("/api/workbench").json()["reanalysis_flags"] == {"assessment": 1}


def test_cancel_confirmation(client):
    gid, _ = _create_group(client)
    client.post(f"/api/groups/{gid}/bindings", json={"consumer": "employment"})
    ticket = client.post(f"/api/groups/{gid}/review", json={}).json()["ticket"]
    assert client.post(f"/api/confirmations/{ticket}/cancel").json()["applied"] is False
    assert client.get("/api/groups").json()[0]["status"] == "unreviewed"


def test_accept_blocked_when_title_taken(client):
    gid, _ = _create_group(client, "Payslips")
    client.post(f"/api/groups/{gid}/bindings", json={"consumer": "employment"})
    ticket = client.post(f"/api/groups/{gid}/rename", json={"title": "Wage Slips"}).json()["ticket"]
    _create_group(client, "Wage Slips")

    data = client.post(f"/api/confirmations/{ticket}/accept").json()
    assert data["outcome"] == "block"
    assert data["applied"] is False
    assert data["ticket"] == ticket
    assert [c["ticket"] for c in client.get("/api/confirmations").json()] == [ticket]
    assert client.get("/api/groups").json()[0]["title"] == "Payslips"


def test_merge_clears_confirmations(client):
    a, _ = _create_group(client, "A", pages=1)
    b, _ = _create_group(client, "B")
    assert client.delete(f"/api/groups/{a}").json()["outcome"] == "confirm"

    client.post(f"/api/groups/{a}/merge", json={"dest_id": b})
    assert client.get("/api/confirmations").json() == []


def test_unknown_ticket(client):
    assert client.post("/api/confirmations/cfm_missing/accept").status_code == 404


# ── Bindings ─────────────────────────────────────────────────────────────


def test_binding_lifecycle(client):
    gid, _ = _create_group(client)
    assert client.post(f"/api/groups/{gid}/bindings", json={"consumer": "employment"}).json()["created"] is True
    assert client.post(f"/api/groups/{gid}/bindings", json={"consumer": "employment"}).json()["created"] is False
    assert client.get(f"/api/groups/{gid}/bindings").json() == [{"type": "section", "section_id": "employment"}]
    assert client.delete(f"/api/groups/{gid}/bindings/employment").status_code == 200
    assert client.delete(f"/api/groups/{gid}/bindings/employment").status_code == 404


# ── Evidence modules ─────────────────────────────────────────────────────


def test_module_review_flow(client):
    module = client.post("/api/modules", json={"doc_type": "payslip", "consumer": "employment"}).json()
    mid = module["id"]
    assert module["status"] == "pending"

    extracted = client.post(f"/api/modules/{mid}/extraction", json={
        "fields": [{"key": "gross-pay", "value": "2500.00"}, {"key": "net-pay", "value": "1980.00"}],
        "issues": [{"severity": "warning", "message": "Low confidence", "field_key": "net-pay"}],
    }).json()
    assert extracted["status"] == "needs-review"

    client.put(f"/api/modules/{mid}/fields/gross-pay", json={"status": "confirmed"})
    early = client.post(f"/api/modules/{mid}/review")
    assert early.status_code == 409
    assert early.json()["error"] == "IncompleteReview"

    edited = client.put(f"/api/modules/{mid}/fields/net-pay", json={
        "status": "edited", "edited_value": "1985.00", "verified_by": "caseworker",
    }).json()
    assert edited["fields"][1]["value"] == "1985.00"

    assert client.post(f"/api/modules/{mid}/review").json()["status"] == "reviewed"


def test_issue_endpoints(client):
    mid = client.post("/api/modules", json={"doc_type": "payslip", "consumer": "employment"}).json()["id"]
    client.post(f"/api/modules/{mid}/extraction", json={"fields": [{"key": "gross-pay", "value": "1"}]})
    added = client.post(f"/api/modules/{mid}/issues", json={"severity": "error", "message": "Mismatch"}).json()
    assert added["module"]["status"] == "needs-review"
    assert client.get("/api/summary").json()["blocking_issues"] == 1

    resolved = client.post(f"/api/modules/{mid}/issues/{added['issue_id']}/resolve", json={"resolved_by": "jp"}).json()
    assert resolved["status"] == "extracted"


@pytest.mark.parametrize("payload", [
    {"fields": [{"value": "2500.00"}]},
    {"fields": [{"key": "gross-pay", "value": "2500.00", "source": "pg_1"}]},
    {"fields": [{"key": "gross-pay", "source": {"document_id": "pg_1", "region": {"x": 1}}}]},
    {"fields": [{"key": "gross-pay"}], "issues": [{"message": "Low confidence"}]},
])
def test_malformed_extraction_is_bad_request(client, payload):
    mid = client.post("/api/modules", json={"doc_type": "payslip", "consumer": "employment"}).json()["id"]
    resp = client.post(f"/api/modules/{mid}/extraction", json=payload)
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidOperation"
    assert client.get(f"/api/modules/{mid}").json()["status"] == "pending"


def test_get_missing_module(client):
    assert client.get("/api/modules/mod_missing").status_code == 404


def test_export_summary(client):
    client.post("/api/modules", json={"doc_type": "passport", "consumer": "personal"})
    resp = client.post("/api/export/summary", json={"case_name": "Maria Garcia"})
    assert resp.status_code == 200
    assert "wordprocessingml" in resp.headers["content-type"]
    assert resp.content[:2] == b"PK"


def test_activity_feed(client):
    gid, _ = _create_group(client, pages=1)
    entries = client.get("/api/activity", params={"group_id": gid}).json()
    assert [e["action"] for e in entries] == ["pages_added", "group_created"]
