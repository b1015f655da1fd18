"""
Name Codec - Naming Convention Parser

Reads and writes the `component/mode/variant` naming convention used to tag
symbols and shared styles with a mode. The second segment carries the mode.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


DEFAULT_SEPARATOR = "/"
# Earlier revision of the convention padded the separator with spaces
LEGACY_SEPARATOR = " / "


class Mode(str, Enum):
    LIGHT = "light"
    DARK = "dark"

    def opposite(self) -> "Mode":
        return Mode.DARK if self is Mode.LIGHT else Mode.LIGHT

    @property
    def label(self) -> str:
        """Capitalized text used in user-facing reports ("Light", "Dark")."""
        return self.value[:1].upper() + self.value[1:]


def parse_mode(text: Any) -> Mode:
    """Parse a user or wire supplied mode; a `Mode` passes through unchanged.

    Raises:
        ValueError: If the text is not one of the known modes.
    """
    if isinstance(text, Mode):
        return text
    normalized = str(text or "").strip().lower()
    for mode in Mode:
        if mode.value == normalized:
            return mode
    raise ValueError(f"Unknown mode '{text}' (expected one of: {', '.join(m.value for m in Mode)})")


@dataclass
class DecodedName:
    segments: List[str] = field(default_factory=list)
    mode: Optional[Mode] = None


class NameCodec:
    """Splits and rebuilds convention names around a configurable separator."""

    def __init__(self, separator: str = DEFAULT_SEPARATOR):
        if not separator:
            raise ValueError("Naming separator must be a non-empty string")
        self.separator = separator

    def decode(self, name: str) -> DecodedName:
        """
        Split a name and read its mode segment.

        A name with fewer than two segments, or whose second segment is not a
        known mode, decodes with `mode=None`. This is never an error.
        """
        segments = (name or "").split(self.separator)
        mode: Optional[Mode] = None
        if len(segments) >= 2:
            candidate = segments[1].lower().strip()
            for known in Mode:
                if known.value == candidate:
                    mode = known
                    break
        return DecodedName(segments=segments, mode=mode)

    def detect_mode(self, name: str) -> Optional[Mode]:
        return self.decode(name).mode

    def encode(self, name: str, new_mode: Mode) -> str:
        """
        Build the sibling name that carries `new_mode` in the mode segment.

        The segment is replaced verbatim with the mode value. Names with fewer
        than two segments come back unchanged.
        """
        segments = (name or "").split(self.separator)
        if len(segments) < 2:
            return name
        segments[1] = new_mode.value if isinstance(new_mode, Mode) else str(new_mode)
        return self.separator.join(segments)


_default_codec = NameCodec()


def decode(name: str) -> DecodedName:
    return _default_codec.decode(name)


def encode(name: str, new_mode: Mode) -> str:
    return _default_codec.encode(name, new_mode)
