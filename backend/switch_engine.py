"""
Switch Engine - Per-Node Switch Decision

For one node (children are not visited here): read the mode from the name
of the referenced resource, build the sibling name for the target mode,
resolve it in the matching catalog, and repoint the reference. Shared styles
are tried before symbol masters and a node is switched at most once.
"""

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict

from document_model import Node
from host_interface import DocumentAccessor
from name_codec import Mode, NameCodec, parse_mode

logger = logging.getLogger(__name__)


class Tally(BaseModel):
    model_config = ConfigDict(frozen=True)

    switched: int = 0
    skipped: int = 0

    def __add__(self, other: "Tally") -> "Tally":
        return Tally(switched=self.switched + other.switched, skipped=self.skipped + other.skipped)

    @property
    def is_empty(self) -> bool:
        return self.switched == 0 and self.skipped == 0


SWITCHED = Tally(switched=1)
SKIPPED = Tally(skipped=1)
UNTOUCHED = Tally()


class SwitchEngine:
    def __init__(self, accessor: DocumentAccessor, codec: Optional[NameCodec] = None):
        self.accessor = accessor
        self.codec = codec or NameCodec()

    def switch_node(self, node: Node, target: Mode) -> Tally:
        """
        Switch a single node towards `target`.

        Returns {1,0} when a reference was repointed, {0,1} when the node
        carries a reference but was left alone, {0,0} when it carries no
        reference at all. When the style path does not switch and the node
        is a symbol instance, the symbol outcome stands for the node.

        `target` may be a `Mode` or its wire spelling ("dark", "LIGHT").
        """
        target = parse_mode(target)
        logger.debug(f"Processing layer: {node.name} ({node.kind.value})")
        outcome = self.switch_shared_style(node, target)
        if outcome.switched:
            return outcome
        if node.has_symbol_reference():
            return self.switch_symbol(node, target)
        return outcome

    def switch_shared_style(self, node: Node, target: Mode) -> Tally:
        if not node.has_shared_style():
            return UNTOUCHED
        style = self.accessor.applied_style(node)
        if style is None:
            return UNTOUCHED

        kind = node.style_kind()
        current = self.codec.detect_mode(style.name)
        if current is None:
            logger.debug(f"{kind.value.capitalize()} style doesn't follow naming convention: {style.name}")
            return SKIPPED
        if current == target:
            logger.debug(f"{kind.value.capitalize()} style already in target mode: {target.value}")
            return SKIPPED

        target_name = self.codec.encode(style.name, target)
        replacement = self.accessor.find_style(kind, target_name)
        if replacement is None:
            logger.info(f"❌ {kind.value.capitalize()} style not found: {target_name}")
            return SKIPPED

        self.accessor.set_style_ref(node, replacement)
        # Direct properties are reset to the new style
        self.accessor.set_style_properties(node, replacement)
        logger.info(f"✅ Switched {kind.value} style from {style.name} to {target_name}")
        return SWITCHED

    def switch_symbol(self, node: Node, target: Mode) -> Tally:
        master = self.accessor.symbol_master(node)
        if master is None:
            logger.debug(f"No symbol master found for: {node.name}")
            return UNTOUCHED

        current = self.codec.detect_mode(master.name)
        if current is None:
            logger.debug(f"Symbol doesn't follow naming convention: {master.name}")
            return SKIPPED
        if current == target:
            logger.debug(f"Symbol already in target mode: {target.value} (no switch needed)")
            return SKIPPED

        target_name = self.codec.encode(master.name, target)
        replacement = self.accessor.find_symbol(target_name)
        if replacement is None:
            logger.info(f"❌ Target symbol not found: {target_name}")
            return SKIPPED

        overrides = self.accessor.get_overrides(node)
        self.accessor.set_symbol_ref(node, replacement)
        self.accessor.set_overrides(node, overrides)
        logger.info(f"✅ Switched symbol from {master.name} to {target_name}")
        return SWITCHED
