"""
Mode Resolver - Current Mode Detection

Works out which mode a node is in from the names of the resources it
references: its applied shared style first, then its symbol master.
"""

import logging
from typing import Iterable, Optional

from document_model import Node
from host_interface import DocumentAccessor
from name_codec import Mode, NameCodec

logger = logging.getLogger(__name__)


class ModeResolver:
    def __init__(self, accessor: DocumentAccessor, codec: Optional[NameCodec] = None):
        self.accessor = accessor
        self.codec = codec or NameCodec()

    def detect(self, node: Node) -> Optional[Mode]:
        """
        Mode of a single node, or None.

        Checked in order: the applied shared style (the text catalog for
        text elements, the layer catalog otherwise), then the master of a
        symbol instance. The first name that carries a mode decides.
        """
        if node.has_shared_style():
            style = self.accessor.applied_style(node)
            mode = self.codec.detect_mode(style.name) if style else None
            if mode is not None:
                return mode

        if node.has_symbol_reference():
            master = self.accessor.symbol_master(node)
            mode = self.codec.detect_mode(master.name) if master else None
            if mode is not None:
                return mode

        return None

    def find_any_mode(self, node: Node) -> Optional[Mode]:
        """
        Pre-order search of the subtree for the first detectable mode.

        A node whose lookup fails is logged and treated as carrying no mode;
        the search continues with its children and later siblings.
        """
        for candidate in node.depth_first():
            try:
                mode = self.detect(candidate)
            except Exception as e:
                logger.error(f"❌ Error finding mode in layer '{candidate.name}' [{candidate.id}]: {e}")
                continue
            if mode is not None:
                logger.debug(f"Found mode {mode.value} on '{candidate.name}'")
                return mode
        return None


def find_mode_in_selection(resolver: ModeResolver, nodes: Iterable[Node]) -> Optional[Mode]:
    """First detectable mode across the selection roots, in selection order."""
    for node in nodes:
        mode = resolver.find_any_mode(node)
        if mode is not None:
            return mode
    return None
