"""
User-facing commands: report strings, scenarios, toggle direction, idempotence.
"""

import logging

import pytest

from builders import catalog_document, group, instance, shape, text
from document_model import Page
from host_interface import CollectingSink, InMemoryDocumentAccessor, StaticSelection
from mode_commands import (
    COMMANDS,
    EMPTY_SELECTION_MESSAGE,
    ModeSwitcher,
    page_report,
    selection_report,
)
from name_codec import Mode
from switch_engine import Tally


def switcher_for(selection, document=None):
    if document is None:
        document = catalog_document(list(selection))
    accessor = InMemoryDocumentAccessor(document)
    sink = CollectingSink()
    return ModeSwitcher(StaticSelection(selection), accessor, sink), accessor, sink


class TestReports:
    def test_selection_report_format(self):
        assert selection_report(Mode.DARK, Tally(switched=3, skipped=1)) == "Switched to Dark Mode: 3 changed, 1 skipped"

    def test_page_report_format(self):
        assert page_report(Mode.LIGHT, Tally()) == "Page switched to Light Mode: 0 changed, 0 skipped"

    def test_command_table(self):
        assert set(COMMANDS) == {"switch_selection_to", "toggle_selection", "switch_page_to"}
        assert COMMANDS["toggle_selection"][0] is False


class TestScenarios:
    def test_symbol_instance_switched_to_dark(self):
        button = instance("button", "sm-light-button")
        switcher, accessor, sink = switcher_for([button])
        switcher.switch_selection_to(Mode.DARK)
        assert button.symbol_ref == "sm-dark-button"
        assert sink.messages == ["Switched to Dark Mode: 1 changed, 0 skipped"]

    def test_text_already_dark_is_skipped(self):
        body = text("body", "ts-dark-body")
        switcher, accessor, sink = switcher_for([body])
        assert switcher.switch_selection_to(Mode.DARK) == Tally(skipped=1)
        assert body.style_ref == "ts-dark-body"
        assert accessor.changes == []

    def test_mixed_selection(self):
        selection = [
            instance("button", "sm-light-button"),
            instance("icon", "sm-dark-icon"),
            text("caption", "ts-light-caption"),
        ]
        switcher, accessor, sink = switcher_for(selection)
        assert switcher.switch_selection_to(Mode.DARK) == Tally(switched=1, skipped=2)
        assert sink.last == "Switched to Dark Mode: 1 changed, 2 skipped"

    def test_empty_selection(self):
        document = catalog_document([instance("button", "sm-light-button")])
        switcher, accessor, sink = switcher_for([], document)
        assert switcher.switch_selection_to(Mode.DARK) is None
        assert sink.messages == [EMPTY_SELECTION_MESSAGE]
        assert accessor.changes == []
        assert document.pages[0].layers[0].symbol_ref == "sm-light-button"


class TestIdempotence:
    def test_second_pass_skips_everything_switched(self):
        selection = [
            instance("button", "sm-light-button"),
            group("card", text("title", "ts-light-body"), style_ref="ls-light-card"),
        ]
        switcher, accessor, sink = switcher_for(selection)
        assert switcher.switch_selection_to(Mode.DARK) == Tally(switched=3)
        assert switcher.switch_selection_to(Mode.DARK) == Tally(skipped=3)
        assert len(accessor.changes) == 3

    def test_round_trip_restores_references(self):
        button = instance("button", "sm-light-button", overrides={"label": "Go"})
        title = text("title", "ts-light-body")
        switcher, accessor, sink = switcher_for([button, title])
        switcher.switch_selection_to(Mode.DARK)
        switcher.switch_selection_to(Mode.LIGHT)
        assert button.symbol_ref == "sm-light-button"
        assert button.overrides == {"label": "Go"}
        assert title.style_ref == "ts-light-body"
        assert sink.last == "Switched to Light Mode: 2 changed, 0 skipped"


class TestModeSpelling:
    def test_plain_string_mode(self):
        button = instance("button", "sm-light-button")
        switcher, accessor, sink = switcher_for([button])
        switcher.switch_selection_to("dark")
        assert button.symbol_ref == "sm-dark-button"
        assert sink.last == "Switched to Dark Mode: 1 changed, 0 skipped"

    def test_plain_string_mode_is_idempotent(self):
        body = text("body", "ts-dark-body")
        switcher, accessor, sink = switcher_for([body])
        assert switcher.switch_selection_to("dark") == Tally(skipped=1)
        assert accessor.changes == []

    def test_unknown_mode_reported_without_mutation(self):
        button = instance("button", "sm-light-button")
        switcher, accessor, sink = switcher_for([button])
        assert switcher.switch_page_to("sepia") is None
        assert sink.last.startswith("Error: Unknown mode 'sepia'")
        assert accessor.changes == []


class TestToggle:
    def test_light_selection_goes_dark(self):
        button = instance("button", "sm-light-button")
        switcher, accessor, sink = switcher_for([button])
        switcher.toggle_selection()
        assert button.symbol_ref == "sm-dark-button"
        assert sink.last.startswith("Switched to Dark Mode")

    def test_dark_selection_goes_light(self):
        icon = instance("icon", "sm-dark-icon")
        switcher, accessor, sink = switcher_for([icon])
        switcher.toggle_selection()
        assert icon.symbol_ref == "sm-light-icon"
        assert sink.last == "Switched to Light Mode: 1 changed, 0 skipped"

    def test_direction_from_first_detectable_mode(self):
        selection = [shape("bare"), group("g", text("title", "ts-dark-body")), instance("button", "sm-light-button")]
        switcher, accessor, sink = switcher_for(selection)
        switcher.toggle_selection()
        assert sink.last == "Switched to Light Mode: 1 changed, 1 skipped"

    def test_broken_descendant_does_not_hide_later_siblings(self, caplog):
        icon = instance("icon", "sm-dark-icon")
        switcher, accessor, sink = switcher_for([group("g", text("broken", "ts-gone"), icon)])
        with caplog.at_level(logging.ERROR):
            switcher.toggle_selection()
        assert icon.symbol_ref == "sm-light-icon"
        assert sink.last == "Switched to Light Mode: 1 changed, 1 skipped"
        assert "broken" in caplog.text

    def test_no_detectable_mode_targets_dark(self):
        switcher, accessor, sink = switcher_for([shape("bare"), instance("logo", "sm-logo")])
        switcher.toggle_selection()
        assert sink.last == "Switched to Dark Mode: 0 changed, 1 skipped"

    def test_empty_selection(self):
        switcher, accessor, sink = switcher_for([])
        assert switcher.toggle_selection() is None
        assert sink.messages == [EMPTY_SELECTION_MESSAGE]


class TestPage:
    def test_switches_current_page_roots(self):
        on_page = instance("button", "sm-light-button")
        elsewhere = instance("other", "sm-light-button")
        document = catalog_document(pages=[
            Page(id="p1", layers=[elsewhere]),
            Page(id="p2", layers=[on_page, group("g", text("title", "ts-light-caption"))]),
        ])
        document.current_page_id = "p2"
        switcher, accessor, sink = switcher_for([], document)
        assert switcher.switch_page_to(Mode.DARK) == Tally(switched=1, skipped=1)
        assert on_page.symbol_ref == "sm-dark-button"
        assert elsewhere.symbol_ref == "sm-light-button"
        assert sink.messages == ["Page switched to Dark Mode: 1 changed, 1 skipped"]

    def test_empty_page(self):
        switcher, accessor, sink = switcher_for([], catalog_document())
        switcher.switch_page_to(Mode.LIGHT)
        assert sink.messages == ["Page switched to Light Mode: 0 changed, 0 skipped"]


class ExplodingSink:
    def report(self, message):
        raise ConnectionError("notification channel closed")


class ExplodingSelection:
    def selected_nodes(self):
        raise RuntimeError("selection unavailable")


class TestFailures:
    def test_sink_failure_is_swallowed(self, caplog):
        button = instance("button", "sm-light-button")
        accessor = InMemoryDocumentAccessor(catalog_document([button]))
        switcher = ModeSwitcher(StaticSelection([button]), accessor, ExplodingSink())
        with caplog.at_level(logging.WARNING):
            assert switcher.switch_selection_to(Mode.DARK) == Tally(switched=1)
        assert "notification channel closed" in caplog.text

    def test_selection_failure_reported_as_error(self):
        sink = CollectingSink()
        switcher = ModeSwitcher(ExplodingSelection(), InMemoryDocumentAccessor(catalog_document()), sink)
        assert switcher.switch_selection_to(Mode.DARK) is None
        assert sink.messages == ["Error: selection unavailable"]

    def test_toggle_selection_failure_reported_as_error(self):
        sink = CollectingSink()
        switcher = ModeSwitcher(ExplodingSelection(), InMemoryDocumentAccessor(catalog_document()), sink)
        switcher.toggle_selection()
        assert sink.messages == ["Error: selection unavailable"]

    def test_page_failure_reported_as_error(self, monkeypatch):
        accessor = InMemoryDocumentAccessor(catalog_document())
        sink = CollectingSink()

        def broken():
            raise RuntimeError("page unavailable")

        monkeypatch.setattr(accessor, "current_page_layers", broken)
        ModeSwitcher(StaticSelection(), accessor, sink).switch_page_to(Mode.DARK)
        assert sink.messages == ["Error: page unavailable"]

    @pytest.mark.parametrize("mode", [Mode.LIGHT, Mode.DARK])
    def test_broken_node_does_not_abort_batch(self, mode):
        selection = [text("broken", "ts-gone"), instance("icon", "sm-light-icon" if mode is Mode.DARK else "sm-dark-icon")]
        switcher, accessor, sink = switcher_for(selection)
        assert switcher.switch_selection_to(mode) == Tally(switched=1, skipped=1)
