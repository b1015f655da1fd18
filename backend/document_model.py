"""
Document Model - Layer Tree and Catalogs

Pydantic models for the design document the switcher operates on. A Document
owns the shared style catalogs, the symbol master catalog and the pages; nodes
point into the catalogs by id and never own the referenced entries.
"""

import copy
import logging
from enum import Enum
from typing import Any, Dict, Iterator, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    CONTAINER = "container"
    TEXT = "text"
    SHAPE = "shape"
    SYMBOL_INSTANCE = "symbol_instance"


class StyleKind(str, Enum):
    TEXT = "text"
    LAYER = "layer"


class SharedStyle(BaseModel):
    """A named, reusable style definition living in one of the two style catalogs."""
    id: str
    name: str
    properties: Dict[str, Any] = Field(default_factory=dict)


class SymbolMaster(BaseModel):
    id: str
    name: str
    # Override keys this master accepts; None accepts everything
    override_points: Optional[List[str]] = None


class Node(BaseModel):
    """A layer in the document tree."""
    model_config = ConfigDict(validate_assignment=True)

    id: str
    name: str = ""
    kind: NodeKind = NodeKind.SHAPE
    children: List["Node"] = Field(default_factory=list)
    style_ref: Optional[str] = None
    symbol_ref: Optional[str] = None
    overrides: Dict[str, Any] = Field(default_factory=dict)
    style: Dict[str, Any] = Field(default_factory=dict)

    def has_children(self) -> bool:
        return self.kind is NodeKind.CONTAINER

    def has_shared_style(self) -> bool:
        return self.style_ref is not None

    def has_symbol_reference(self) -> bool:
        return self.kind is NodeKind.SYMBOL_INSTANCE and self.symbol_ref is not None

    def style_kind(self) -> StyleKind:
        """Which style catalog this node's shared style lives in."""
        return StyleKind.TEXT if self.kind is NodeKind.TEXT else StyleKind.LAYER

    def depth_first(self) -> Iterator["Node"]:
        """Traverse pre-order, yielding self then children in order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            if node.has_children():
                stack.extend(reversed(node.children))


Node.model_rebuild()


class Page(BaseModel):
    id: str
    name: str = ""
    layers: List[Node] = Field(default_factory=list)


class Document(BaseModel):
    text_styles: List[SharedStyle] = Field(default_factory=list)
    layer_styles: List[SharedStyle] = Field(default_factory=list)
    symbols: List[SymbolMaster] = Field(default_factory=list)
    pages: List[Page] = Field(default_factory=list)
    current_page_id: Optional[str] = None

    def catalog(self, kind: StyleKind) -> List[SharedStyle]:
        return self.text_styles if kind is StyleKind.TEXT else self.layer_styles

    def current_page(self) -> Optional[Page]:
        """The page named by `current_page_id`, else the first page."""
        if self.current_page_id is not None:
            for page in self.pages:
                if page.id == self.current_page_id:
                    return page
            logger.warning(f"⚠️ current_page_id '{self.current_page_id}' not found; falling back to first page")
        return self.pages[0] if self.pages else None

    def iter_nodes(self) -> Iterator[Node]:
        for page in self.pages:
            for layer in page.layers:
                yield from layer.depth_first()

    def find_node(self, node_id: str) -> Optional[Node]:
        for node in self.iter_nodes():
            if node.id == node_id:
                return node
        return None


class ReferenceChange(BaseModel):
    """One reference rewrite performed on a node, in the order it happened."""
    node_id: str
    reference: Literal["shared_style", "symbol"]
    style_kind: Optional[StyleKind] = None
    from_id: Optional[str] = None
    from_name: Optional[str] = None
    to_id: str
    to_name: str
    overrides: Optional[Dict[str, Any]] = None


def copy_properties(style: SharedStyle) -> Dict[str, Any]:
    """Detached copy of a style's canonical properties, safe to hang on a node."""
    return copy.deepcopy(style.properties)
