"""
Mode Commands - Entry Points for the Host Command Dispatcher

Each command runs one synchronous walk over the selection (or the current
page), then reports the aggregate result through the messaging sink. No
command raises; failures end up in the log and in an "Error: ..." report.
"""

import logging
from typing import Callable, Dict, Optional

from host_interface import DocumentAccessor, MessagingSink, SelectionProvider
from mode_resolver import ModeResolver, find_mode_in_selection
from name_codec import Mode, NameCodec, parse_mode
from switch_engine import SwitchEngine, Tally
from tree_walker import TreeWalker

logger = logging.getLogger(__name__)

EMPTY_SELECTION_MESSAGE = "Please select layers to switch modes"

# Toggle target when nothing in the selection carries a mode
TOGGLE_FALLBACK_MODE = Mode.DARK


def selection_report(mode: Mode, tally: Tally) -> str:
    return f"Switched to {mode.label} Mode: {tally.switched} changed, {tally.skipped} skipped"


def page_report(mode: Mode, tally: Tally) -> str:
    return f"Page switched to {mode.label} Mode: {tally.switched} changed, {tally.skipped} skipped"


def error_report(error: Exception) -> str:
    return f"Error: {getattr(error, 'message', None) or error}"


class ModeSwitcher:
    """Wires the engine to the host collaborators and exposes the user-facing commands."""

    def __init__(
        self,
        selection: SelectionProvider,
        accessor: DocumentAccessor,
        sink: MessagingSink,
        codec: Optional[NameCodec] = None,
    ):
        self.selection = selection
        self.accessor = accessor
        self.sink = sink
        self.codec = codec or NameCodec()
        self.resolver = ModeResolver(accessor, self.codec)
        self.walker = TreeWalker(SwitchEngine(accessor, self.codec))

    def switch_selection_to(self, mode: Mode) -> Optional[Tally]:
        """Switch every selected layer and its descendants to `mode`."""
        try:
            mode = parse_mode(mode)
            nodes = self.selection.selected_nodes()
            if not nodes:
                self._report(EMPTY_SELECTION_MESSAGE)
                return None
            logger.info(f"🚀 Switching {len(nodes)} selected layer(s) to {mode.value} mode")
            tally = self.walker.walk_all(nodes, mode)
            logger.info(f"🧾 Selection result: switched={tally.switched}, skipped={tally.skipped}")
            self._report(selection_report(mode, tally))
            return tally
        except Exception as e:
            logger.error(f"Error in switch_selection_to: {e}")
            self._report(error_report(e))
            return None

    def toggle_selection(self) -> Optional[Tally]:
        """Switch the selection to the opposite of the first mode found in it."""
        try:
            nodes = self.selection.selected_nodes()
            if not nodes:
                self._report(EMPTY_SELECTION_MESSAGE)
                return None
            detected = find_mode_in_selection(self.resolver, nodes)
            target = detected.opposite() if detected is not None else TOGGLE_FALLBACK_MODE
            logger.info(f"🔁 Toggle detected current mode: {detected.value if detected else None}, target: {target.value}")
        except Exception as e:
            logger.error(f"Error in toggle_selection: {e}")
            self._report(error_report(e))
            return None
        return self.switch_selection_to(target)

    def switch_page_to(self, mode: Mode) -> Optional[Tally]:
        """Switch every layer on the current page to `mode`."""
        try:
            mode = parse_mode(mode)
            layers = self.accessor.current_page_layers()
            logger.info(f"🚀 Switching page ({len(layers)} root layer(s)) to {mode.value} mode")
            tally = self.walker.walk_all(layers, mode)
            logger.info(f"🧾 Page result: switched={tally.switched}, skipped={tally.skipped}")
            self._report(page_report(mode, tally))
            return tally
        except Exception as e:
            logger.error(f"Error switching entire page: {e}")
            self._report(error_report(e))
            return None

    def _report(self, message: str) -> None:
        try:
            self.sink.report(message)
        except Exception as e:
            logger.warning(f"⚠️ Error showing message '{message}': {e}")


COMMAND_SWITCH_SELECTION_TO = "switch_selection_to"
COMMAND_TOGGLE_SELECTION = "toggle_selection"
COMMAND_SWITCH_PAGE_TO = "switch_page_to"

# Command name -> (needs a mode argument, runner)
COMMANDS: Dict[str, tuple[bool, Callable[..., Optional[Tally]]]] = {
    COMMAND_SWITCH_SELECTION_TO: (True, ModeSwitcher.switch_selection_to),
    COMMAND_TOGGLE_SELECTION: (False, ModeSwitcher.toggle_selection),
    COMMAND_SWITCH_PAGE_TO: (True, ModeSwitcher.switch_page_to),
}
