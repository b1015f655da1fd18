"""
Host Interface - Collaborators Supplied by the Host

The switching core never touches the host document directly. It reads and
writes through a DocumentAccessor, gets its roots from a SelectionProvider,
and talks to the user through a MessagingSink. This module defines those
seams plus in-memory implementations backed by a `Document` snapshot.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError

from document_model import (
    Document,
    Node,
    ReferenceChange,
    SharedStyle,
    StyleKind,
    SymbolMaster,
    copy_properties,
)
from host_bridge import HostAPIError
from resource_index import ResourceIndex

logger = logging.getLogger(__name__)


class SelectionProvider(Protocol):
    def selected_nodes(self) -> List[Node]: ...


class MessagingSink(Protocol):
    def report(self, message: str) -> None: ...


class DocumentAccessor(Protocol):
    """Read access to the catalogs and current page; writes limited to node references."""

    def applied_style(self, node: Node) -> Optional[SharedStyle]: ...

    def symbol_master(self, node: Node) -> Optional[SymbolMaster]: ...

    def find_style(self, kind: StyleKind, name: str) -> Optional[SharedStyle]: ...

    def find_symbol(self, name: str) -> Optional[SymbolMaster]: ...

    def current_page_layers(self) -> List[Node]: ...

    def set_style_ref(self, node: Node, style: SharedStyle) -> None: ...

    def set_style_properties(self, node: Node, style: SharedStyle) -> None: ...

    def get_overrides(self, node: Node) -> Dict[str, Any]: ...

    def set_symbol_ref(self, node: Node, master: SymbolMaster) -> None: ...

    def set_overrides(self, node: Node, overrides: Dict[str, Any]) -> None: ...


class StaticSelection:
    """A fixed, ordered selection."""

    def __init__(self, nodes: Optional[List[Node]] = None):
        self._nodes = list(nodes or [])

    def selected_nodes(self) -> List[Node]:
        return list(self._nodes)


class CollectingSink:
    """Keeps every report in order; the bridge delivers them after the run."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def report(self, message: str) -> None:
        self.messages.append(message)

    @property
    def last(self) -> Optional[str]:
        return self.messages[-1] if self.messages else None


class InMemoryDocumentAccessor:
    """
    DocumentAccessor over a pydantic `Document`.

    Mutations are applied to the nodes in place and recorded as
    `ReferenceChange` entries so they can be replayed on a live host.
    """

    def __init__(self, document: Document):
        self.document = document
        self.index = ResourceIndex(document)
        self.changes: List[ReferenceChange] = []

    def applied_style(self, node: Node) -> Optional[SharedStyle]:
        if node.style_ref is None:
            return None
        kind = node.style_kind()
        style = self.index.style_by_id(kind, node.style_ref)
        if style is not None:
            return style
        other = StyleKind.LAYER if kind is StyleKind.TEXT else StyleKind.TEXT
        if self.index.style_by_id(other, node.style_ref) is not None:
            raise HostAPIError({
                "code": "style_kind_mismatch",
                "message": f"Node '{node.name}' references a {other.value} style but holds {kind.value} styles",
                "details": {"node_id": node.id, "style_ref": node.style_ref},
            })
        raise HostAPIError({
            "code": "dangling_style_reference",
            "message": f"Style '{node.style_ref}' referenced by '{node.name}' is not in the {kind.value} style catalog",
            "details": {"node_id": node.id, "style_ref": node.style_ref},
        })

    def symbol_master(self, node: Node) -> Optional[SymbolMaster]:
        if node.symbol_ref is None:
            return None
        master = self.index.symbol_by_id(node.symbol_ref)
        if master is None:
            raise HostAPIError({
                "code": "dangling_symbol_reference",
                "message": f"Symbol '{node.symbol_ref}' referenced by '{node.name}' is not in the symbol catalog",
                "details": {"node_id": node.id, "symbol_ref": node.symbol_ref},
            })
        return master

    def find_style(self, kind: StyleKind, name: str) -> Optional[SharedStyle]:
        return self.index.find_style(kind, name)

    def find_symbol(self, name: str) -> Optional[SymbolMaster]:
        return self.index.find_symbol(name)

    def current_page_layers(self) -> List[Node]:
        page = self.document.current_page()
        return list(page.layers) if page else []

    def set_style_ref(self, node: Node, style: SharedStyle) -> None:
        previous = self.index.style_by_id(node.style_kind(), node.style_ref) if node.style_ref else None
        node.style_ref = style.id
        self.changes.append(ReferenceChange(
            node_id=node.id,
            reference="shared_style",
            style_kind=node.style_kind(),
            from_id=previous.id if previous else None,
            from_name=previous.name if previous else None,
            to_id=style.id,
            to_name=style.name,
        ))

    def set_style_properties(self, node: Node, style: SharedStyle) -> None:
        node.style = copy_properties(style)

    def get_overrides(self, node: Node) -> Dict[str, Any]:
        return dict(node.overrides)

    def set_symbol_ref(self, node: Node, master: SymbolMaster) -> None:
        previous = self.index.symbol_by_id(node.symbol_ref) if node.symbol_ref else None
        node.symbol_ref = master.id
        self.changes.append(ReferenceChange(
            node_id=node.id,
            reference="symbol",
            from_id=previous.id if previous else None,
            from_name=previous.name if previous else None,
            to_id=master.id,
            to_name=master.name,
        ))

    def set_overrides(self, node: Node, overrides: Dict[str, Any]) -> None:
        master = self.index.symbol_by_id(node.symbol_ref) if node.symbol_ref else None
        accepted = master.override_points if master else None
        if accepted is None:
            kept = dict(overrides)
        else:
            kept = {key: value for key, value in overrides.items() if key in accepted}
            dropped = sorted(set(overrides) - set(kept))
            if dropped:
                logger.debug(f"Dropped overrides not supported by '{master.name}': {dropped}")
        node.overrides = kept
        # Attach the surviving overrides to the swap that was just recorded
        for change in reversed(self.changes):
            if change.node_id == node.id and change.reference == "symbol":
                change.overrides = dict(kept)
                break


class SnapshotSession:
    """
    A host snapshot turned into the three collaborators the core needs.

    Snapshot payload shape:
        { text_styles, layer_styles, symbols, pages, current_page_id?, selection: [node ids] }
    """

    def __init__(self, document: Document, selection_ids: Optional[List[str]] = None):
        self.document = document
        self.accessor = InMemoryDocumentAccessor(document)
        self.sink = CollectingSink()
        self.selection = StaticSelection(self._resolve_selection(selection_ids or []))

    @classmethod
    def from_payload(cls, payload: Any) -> "SnapshotSession":
        if not isinstance(payload, dict):
            raise HostAPIError({
                "code": "invalid_snapshot",
                "message": "Snapshot must be a JSON object",
                "details": {"received": type(payload).__name__},
            })
        body = {k: v for k, v in payload.items() if k != "selection"}
        try:
            document = Document.model_validate(body)
        except ValidationError as e:
            raise HostAPIError({
                "code": "invalid_snapshot",
                "message": f"Snapshot failed validation with {e.error_count()} error(s)",
                "details": {"errors": json.loads(e.json(include_url=False))},
            })
        selection = payload.get("selection") or []
        if not isinstance(selection, list):
            raise HostAPIError({
                "code": "invalid_snapshot",
                "message": "'selection' must be a list of node ids",
                "details": {"selection": selection},
            })
        session = cls(document, [str(node_id) for node_id in selection])
        dupes = session.accessor.index.duplicate_names()
        if dupes:
            logger.warning(f"⚠️ Duplicate catalog names (first match wins): {dupes}")
        return session

    def _resolve_selection(self, selection_ids: List[str]) -> List[Node]:
        nodes: List[Node] = []
        for node_id in selection_ids:
            node = self.document.find_node(node_id)
            if node is None:
                logger.warning(f"⚠️ Selected node '{node_id}' not found in snapshot; ignoring")
                continue
            nodes.append(node)
        return nodes
