"""Tests for evidence-workbench/app/gate.py: confirmation decisions for gated edits."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent / "evidence-workbench"))

from app import gate
from app.bindings import BindingRegistry
from app.document_store import DocumentStore
from app.models import GroupChecklistBinding


@pytest.fixture()
def store():
    return DocumentStore()


@pytest.fixture()
def registry(store):
    return BindingRegistry(store=store)


def _decide(store, registry, action, group_id, new_title=None, **kwargs):
    return gate.decide(gate.Intent(action, group_id, new_title), store, registry, **kwargs)


# ── Rename ───────────────────────────────────────────────────────────────


class TestRename:
    def test_unbound_rename_proceeds(self, store, registry):
        gid = store.create_group("personal", "Passport")
        assert _decide(store, registry, gate.RENAME, gid, "Passport (old)").outcome == gate.PROCEED

    def test_bound_rename_asks_for_confirmation(self, store, registry):
        gid = store.create_group("employment", "Payslips")
        registry.record_binding(gid, GroupChecklistBinding.for_section("employment"))

        decision = _decide(store, registry, gate.RENAME, gid, "Payslips 2024")

        assert decision.outcome == gate.CONFIRM
        request = decision.confirmation
        assert request.confirm_label == "Rename and Re-analyze"
        assert request.new_title == "Payslips 2024"
        assert request.consumers == [{"type": "section", "consumer": "employment", "label": "Employment"}]

    def test_duplicate_title_blocks(self, store, registry):
        gid = store.create_group("personal", "Passport")
        store.create_group("personal", "BRP")
        decision = _decide(store, registry, gate.RENAME, gid, "brp")
        assert decision.outcome == gate.BLOCK
        assert "already exists" in decision.reason

    def test_blank_title_blocks(self, store, registry):
        gid = store.create_group("personal", "Passport")
        assert _decide(store, registry, gate.RENAME, gid, "  ").outcome == gate.BLOCK

    def test_same_title_on_bound_group_proceeds(self, store, registry):
        gid = store.create_group("personal", "Passport")
        registry.record_binding(gid, GroupChecklistBinding.for_assessment())
        assert _decide(store, registry, gate.RENAME, gid, "Passport").outcome == gate.PROCEED


# ── Delete ───────────────────────────────────────────────────────────────


class TestDelete:
    def test_empty_unbound_delete_proceeds(self, store, registry):
        gid = store.create_group("personal", "Passport")
        assert _decide(store, registry, gate.DELETE, gid).outcome == gate.PROCEED

    def test_nonempty_unbound_delete_confirms(self, store, registry):
        gid = store.create_group("personal", "Passport")
        store.add_pages(gid, ["p1.pdf", "p2.pdf"])
        decision = _decide(store, registry, gate.DELETE, gid)
        assert decision.outcome == gate.CONFIRM
        assert decision.confirmation.message == "This document contains 2 pages. It will be permanently removed."
        assert decision.confirmation.confirm_label == "Delete"
        assert decision.confirmation.consumers == []

    def test_nonempty_delete_can_skip_confirmation(self, store, registry):
        gid = store.create_group("personal", "Passport")
        store.add_pages(gid, ["p1.pdf"])
        decision = _decide(store, registry, gate.DELETE, gid, confirm_nonempty_delete=False)
        assert decision.outcome == gate.PROCEED

    def test_bound_delete_lists_references(self, store, registry):
        gid = store.create_group("personal", "Passport")
        store.add_pages(gid, ["p1.pdf"])
        registry.record_binding(gid, GroupChecklistBinding.for_section("personal"))
        registry.record_binding(gid, GroupChecklistBinding.for_assessment())

        request = _decide(store, registry, gate.DELETE, gid).confirmation

        assert request.confirm_label == "Delete and Remove References"
        assert request.message == "This document contains 1 page. It will be permanently removed."
        assert [c["label"] for c in request.consumers] == ["Personal Details", "Case Assessment"]
        assert request.footnote

    def test_bound_empty_delete_still_confirms(self, store, registry):
        gid = store.create_group("personal", "Passport")
        registry.record_binding(gid, GroupChecklistBinding.for_assessment())
        decision = _decide(store, registry, gate.DELETE, gid, confirm_nonempty_delete=False)
        assert decision.outcome == gate.CONFIRM


# ── Review confirmation and structural checks ────────────────────────────


class TestReviewAndStructure:
    def test_unbound_review_proceeds(self, store, registry):
        gid = store.create_group("personal", "Passport")
        assert _decide(store, registry, gate.CONFIRM_REVIEW, gid).outcome == gate.PROCEED

    def test_bound_review_confirms(self, store, registry):
        gid = store.create_group("personal", "Passport")
        registry.record_binding(gid, GroupChecklistBinding.for_section("personal"))
        decision = _decide(store, registry, gate.CONFIRM_REVIEW, gid)
        assert decision.outcome == gate.CONFIRM
        assert decision.confirmation.confirm_label == "Confirm Review and Re-analyze"

    def test_missing_group_blocks(self, store, registry):
        decision = _decide(store, registry, gate.DELETE, "grp_missing")
        assert decision.outcome == gate.BLOCK

    def test_unknown_action_blocks(self, store, registry):
        gid = store.create_group("personal", "Passport")
        assert _decide(store, registry, "archive", gid).outcome == gate.BLOCK

    def test_decide_does_not_mutate(self, store, registry):
        gid = store.create_group("personal", "Passport")
        store.add_pages(gid, ["p1.pdf"])
        registry.record_binding(gid, GroupChecklistBinding.for_assessment())
        before = (store.snapshot(), registry.snapshot())
        _decide(store, registry, gate.DELETE, gid)
        _decide(store, registry, gate.RENAME, gid, "Other")
        assert (store.snapshot(), registry.snapshot()) == before

    def test_decision_serializes(self, store, registry):
        gid = store.create_group("personal", "Passport")
        registry.record_binding(gid, GroupChecklistBinding.for_assessment())
        data = _decide(store, registry, gate.DELETE, gid).to_dict()
        assert data["outcome"] == gate.CONFIRM
        assert data["confirmation"]["group_id"] == gid
