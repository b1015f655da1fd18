"""
Resource Index - Catalog Lookups

Resolves symbol masters and shared styles by exact name (case-sensitive, no
trimming) or by id. When a catalog holds duplicate names the first entry in
catalog order wins; `duplicate_names` only reports the ambiguity.
"""

from typing import Dict, List, Optional, Sequence, TypeVar

from document_model import Document, SharedStyle, StyleKind, SymbolMaster


R = TypeVar("R", SharedStyle, SymbolMaster)


def find_by_exact_name(catalog: Sequence[R], name: str) -> Optional[R]:
    for entry in catalog:
        if entry.name == name:
            return entry
    return None


def find_by_id(catalog: Sequence[R], resource_id: str) -> Optional[R]:
    for entry in catalog:
        if entry.id == resource_id:
            return entry
    return None


def _duplicates(catalog: Sequence[R]) -> List[str]:
    counts: Dict[str, int] = {}
    for entry in catalog:
        counts[entry.name] = counts.get(entry.name, 0) + 1
    return [name for name, count in counts.items() if count > 1]


class ResourceIndex:
    """Name and id lookups scoped to one catalog of a Document."""

    def __init__(self, document: Document):
        self.document = document

    def find_text_style(self, name: str) -> Optional[SharedStyle]:
        return find_by_exact_name(self.document.text_styles, name)

    def find_layer_style(self, name: str) -> Optional[SharedStyle]:
        return find_by_exact_name(self.document.layer_styles, name)

    def find_style(self, kind: StyleKind, name: str) -> Optional[SharedStyle]:
        return find_by_exact_name(self.document.catalog(kind), name)

    def find_symbol(self, name: str) -> Optional[SymbolMaster]:
        return find_by_exact_name(self.document.symbols, name)

    def style_by_id(self, kind: StyleKind, style_id: str) -> Optional[SharedStyle]:
        return find_by_id(self.document.catalog(kind), style_id)

    def symbol_by_id(self, symbol_id: str) -> Optional[SymbolMaster]:
        return find_by_id(self.document.symbols, symbol_id)

    def duplicate_names(self) -> Dict[str, List[str]]:
        """Names that appear more than once, keyed by catalog. Empty catalogs are omitted."""
        report: Dict[str, List[str]] = {}
        for label, catalog in (
            ("text_styles", self.document.text_styles),
            ("layer_styles", self.document.layer_styles),
            ("symbols", self.document.symbols),
        ):
            dupes = _duplicates(catalog)
            if dupes:
                report[label] = dupes
        return report
