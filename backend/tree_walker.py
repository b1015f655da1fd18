"""
Tree Walker - Application of the Switch Engine to a Subtree

Visits a node and all of its descendants in pre-order and sums the per-node
outcomes. This is the single place where per-node failures are contained:
a node that raises is logged, counted as skipped, and the walk carries on
with its children and siblings. An explicit stack keeps arbitrarily deep
trees clear of the interpreter's recursion limit.
"""

import logging
from typing import Iterable

from document_model import Node
from name_codec import Mode, parse_mode
from switch_engine import SKIPPED, SwitchEngine, Tally

logger = logging.getLogger(__name__)


class TreeWalker:
    def __init__(self, engine: SwitchEngine):
        self.engine = engine

    def walk(self, node: Node, target: Mode) -> Tally:
        target = parse_mode(target)
        total = Tally()
        stack = [node]
        while stack:
            current = stack.pop()
            total = total + self._visit(current, target)
            if current.has_children():
                stack.extend(reversed(current.children))
        return total

    def walk_all(self, nodes: Iterable[Node], target: Mode) -> Tally:
        total = Tally()
        for node in nodes:
            total = total + self.walk(node, target)
        return total

    def _visit(self, node: Node, target: Mode) -> Tally:
        try:
            return self.engine.switch_node(node, target)
        except Exception as e:
            code = getattr(e, "code", None)
            suffix = f" (code={code})" if code else ""
            logger.error(f"❌ Error processing layer '{node.name}' [{node.id}]: {e}{suffix}")
            return SKIPPED
