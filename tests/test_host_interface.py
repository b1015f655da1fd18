import logging

import pytest

from builders import catalog_document, instance, shape, snapshot_payload, text
from document_model import StyleKind
from host_bridge import HostAPIError
from host_interface import CollectingSink, InMemoryDocumentAccessor, SnapshotSession, StaticSelection


class TestSnapshotSession:
    def test_builds_document_and_selection(self):
        session = SnapshotSession.from_payload(snapshot_payload(("btn", "title")))
        assert [n.id for n in session.selection.selected_nodes()] == ["btn", "title"]
        assert session.document.current_page().name == "Screens"
        assert session.accessor.document is session.document

    def test_unknown_selection_ids_ignored(self, caplog):
        with caplog.at_level(logging.WARNING):
            session = SnapshotSession.from_payload(snapshot_payload(("ghost", "btn")))
        assert [n.id for n in session.selection.selected_nodes()] == ["btn"]
        assert "ghost" in caplog.text

    def test_missing_selection_is_empty(self):
        payload = snapshot_payload()
        del payload["selection"]
        assert SnapshotSession.from_payload(payload).selection.selected_nodes() == []

    def test_selection_must_be_list(self):
        payload = snapshot_payload()
        payload["selection"] = "btn"
        with pytest.raises(HostAPIError) as excinfo:
            SnapshotSession.from_payload(payload)
        assert excinfo.value.code == "invalid_snapshot"

    def test_invalid_node_kind(self):
        payload = snapshot_payload()
        payload["pages"][0]["layers"][0]["kind"] = "hotspot"
        with pytest.raises(HostAPIError) as excinfo:
            SnapshotSession.from_payload(payload)
        assert excinfo.value.code == "invalid_snapshot"
        assert excinfo.value.details["errors"]

    def test_non_object_snapshot(self):
        with pytest.raises(HostAPIError, match="JSON object"):
            SnapshotSession.from_payload(["not", "a", "snapshot"])

    def test_duplicate_names_logged(self, caplog):
        payload = snapshot_payload()
        payload["symbols"].append({"id": "sm-l2", "name": "button/light/primary"})
        with caplog.at_level(logging.WARNING):
            SnapshotSession.from_payload(payload)
        assert "Duplicate catalog names" in caplog.text


class TestInMemoryDocumentAccessor:
    def test_applied_style_uses_node_catalog(self):
        accessor = InMemoryDocumentAccessor(catalog_document())
        assert accessor.applied_style(text("t", "ts-light-body")).name == "text/light/body"
        assert accessor.applied_style(shape("s")) is None

    def test_style_from_wrong_catalog(self):
        accessor = InMemoryDocumentAccessor(catalog_document())
        with pytest.raises(HostAPIError) as excinfo:
            accessor.applied_style(shape("s", "ts-light-body"))
        assert excinfo.value.code == "style_kind_mismatch"

    def test_records_style_change(self):
        accessor = InMemoryDocumentAccessor(catalog_document())
        node = text("t", "ts-light-body")
        accessor.set_style_ref(node, accessor.find_style(StyleKind.TEXT, "text/dark/body"))
        change = accessor.changes[0]
        assert (change.from_id, change.to_id, change.style_kind) == ("ts-light-body", "ts-dark-body", StyleKind.TEXT)

    def test_records_symbol_change_with_overrides(self):
        accessor = InMemoryDocumentAccessor(catalog_document())
        node = instance("i", "sm-light-button", overrides={"label": "Go", "badge": "3"})
        accessor.set_symbol_ref(node, accessor.find_symbol("button/dark/primary"))
        accessor.set_overrides(node, {"label": "Go", "badge": "3"})
        change = accessor.changes[0]
        assert change.reference == "symbol"
        assert change.from_name == "button/light/primary"
        assert change.overrides == {"label": "Go"}

    def test_get_overrides_is_a_copy(self):
        accessor = InMemoryDocumentAccessor(catalog_document())
        node = instance("i", "sm-light-button", overrides={"label": "Go"})
        captured = accessor.get_overrides(node)
        captured["label"] = "Changed"
        assert node.overrides == {"label": "Go"}


class TestSimpleCollaborators:
    def test_static_selection_preserves_order(self):
        nodes = [shape("b"), shape("a")]
        assert [n.id for n in StaticSelection(nodes).selected_nodes()] == ["b", "a"]

    def test_collecting_sink(self):
        sink = CollectingSink()
        assert sink.last is None
        sink.report("one")
        sink.report("two")
        assert sink.messages == ["one", "two"]
        assert sink.last == "two"
