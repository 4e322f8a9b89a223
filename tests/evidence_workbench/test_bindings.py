"""Tests for evidence-workbench/app/bindings.py: the group/consumer registry."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent / "evidence-workbench"))

from app.bindings import BindingRegistry
from app.document_store import DocumentStore
from app.errors import NotFound
from app.models import GroupChecklistBinding

EMPLOYMENT = GroupChecklistBinding.for_section("employment")
ASSESSMENT = GroupChecklistBinding.for_assessment()


@pytest.fixture()
def store():
    return DocumentStore()


@pytest.fixture()
def registry(store):
    return BindingRegistry(store=store)


@pytest.fixture()
def signals(registry):
    received = []
    registry.add_sink(lambda gid, binding: received.append((gid, binding.consumer)))
    return received


# ── Binding values ───────────────────────────────────────────────────────


class TestBindingValues:
    def test_section_binding_needs_id(self):
        with pytest.raises(ValueError):
            GroupChecklistBinding(type="section")

    def test_assessment_binding_takes_no_id(self):
        with pytest.raises(ValueError):
            GroupChecklistBinding(type="assessment", section_id="personal")

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            GroupChecklistBinding(type="module", section_id="x")

    def test_from_consumer(self):
        assert GroupChecklistBinding.from_consumer("assessment") == ASSESSMENT
        assert GroupChecklistBinding.from_consumer("employment") == EMPLOYMENT
        assert EMPLOYMENT.consumer == "employment"
        assert ASSESSMENT.consumer == "assessment"


# ── Recording and releasing ──────────────────────────────────────────────


class TestRecordRelease:
    def test_record_and_query(self, store, registry):
        gid = store.create_group("employment", "Payslips")
        assert registry.record_binding(gid, EMPLOYMENT) is True
        assert registry.bindings_for(gid) == [EMPLOYMENT]
        assert registry.is_bound(gid)
        assert registry.groups_for("employment") == [gid]

    def test_record_is_idempotent(self, store, registry):
        gid = store.create_group("employment", "Payslips")
        registry.record_binding(gid, EMPLOYMENT)
        assert registry.record_binding(gid, EMPLOYMENT) is False
        assert registry.bindings_for(gid) == [EMPLOYMENT]

    def test_bindings_keep_recording_order(self, store, registry):
        gid = store.create_group("employment", "Payslips")
        registry.record_binding(gid, ASSESSMENT)
        registry.record_binding(gid, EMPLOYMENT)
        assert registry.bindings_for(gid) == [ASSESSMENT, EMPLOYMENT]

    def test_unbound_group_has_no_bindings(self, store, registry):
        gid = store.create_group("employment", "Payslips")
        assert registry.bindings_for(gid) == []
        assert not registry.is_bound(gid)

    def test_record_for_missing_group(self, registry):
        with pytest.raises(NotFound):
            registry.record_binding("grp_missing", EMPLOYMENT)

    def test_release(self, store, registry):
        gid = store.create_group("employment", "Payslips")
        registry.record_binding(gid, EMPLOYMENT)
        assert registry.release_binding(gid, EMPLOYMENT) is True
        assert registry.release_binding(gid, EMPLOYMENT) is False
        assert registry.snapshot() == {}

    def test_standalone_registry_accepts_any_group(self):
        registry = BindingRegistry()
        assert registry.record_binding("grp_external", ASSESSMENT) is True


# ── Invalidation ─────────────────────────────────────────────────────────


class TestInvalidation:
    def test_page_move_into_bound_group_signals_consumer(self, store, registry, signals):
        bound = store.create_group("employment", "Payslips")
        other = store.create_group("employment", "Loose Scans")
        store.add_pages(bound, ["payslip_jan.pdf"])
        (page,) = store.add_pages(other, ["payslip_feb.pdf"])
        registry.record_binding(bound, EMPLOYMENT)

        store.move_page(page, other, bound, 1)

        assert signals == [(bound, "employment")]

    def test_rename_signals(self, store, registry, signals):
        gid = store.create_group("employment", "Payslips")
        registry.record_binding(gid, EMPLOYMENT)
        store.rename_group(gid, "Payslips 2024")
        assert signals == [(gid, "employment")]

    def test_review_signals(self, store, registry, signals):
        gid = store.create_group("employment", "Payslips")
        registry.record_binding(gid, EMPLOYMENT)
        store.confirm_group_review(gid)
        assert signals == [(gid, "employment")]

    def test_every_consumer_is_signalled(self, store, registry, signals):
        gid = store.create_group("employment", "Payslips")
        registry.record_binding(gid, EMPLOYMENT)
        registry.record_binding(gid, ASSESSMENT)
        store.add_pages(gid, ["a.pdf"])
        assert signals == [(gid, "employment"), (gid, "assessment")]

    def test_unbound_changes_are_silent(self, store, registry, signals):
        gid = store.create_group("employment", "Payslips")
        store.add_pages(gid, ["a.pdf"])
        store.rename_group(gid, "Payslips 2024")
        assert signals == []

    def test_delete_cascades_once_and_releases(self, store, registry, signals):
        gid = store.create_group("personal", "Passport")
        pages = store.add_pages(gid, ["p1.pdf", "p2.pdf"])
        registry.record_binding(gid, ASSESSMENT)

        store.delete_group(gid)

        assert all(store.find_page(pid) is None for pid in pages)
        assert signals == [(gid, "assessment")]
        assert registry.bindings_for(gid) == []

    def test_merge_releases_source_and_signals_dest(self, store, registry, signals):
        dest = store.create_group("employment", "Payslips")
        src = store.create_group("employment", "More Payslips")
        store.add_pages(src, ["a.pdf"])
        registry.record_binding(dest, EMPLOYMENT)
        registry.record_binding(src, ASSESSMENT)

        store.merge_groups(src, dest)

        assert signals == [(dest, "employment"), (src, "assessment")]
        assert registry.bindings_for(src) == []
        assert registry.bindings_for(dest) == [EMPLOYMENT]

    def test_invalidations_are_logged(self, store, registry):
        gid = store.create_group("employment", "Payslips")
        registry.record_binding(gid, EMPLOYMENT)
        store.add_pages(gid, ["a.pdf"])
        assert store.activity.count("binding_invalidated", group_id=gid) == 1
