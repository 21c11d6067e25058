"""Data models shared by the container store, converter and session controller"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel


class BlockKind(str, Enum):
    """Closed set of markdown block kinds the converter knows how to render."""
    heading        = "heading"
    paragraph      = "paragraph"
    list_item      = "list_item"
    code           = "code"
    thematic_break = "thematic_break"
    unsupported    = "unsupported"


class InlineKind(str, Enum):
    """Closed set of inline span kinds; unsupported spans are skipped with a warning."""
    text        = "text"
    emphasis    = "emphasis"       # single delimiter -> italic
    strong      = "strong"         # double delimiter -> bold
    code        = "code"
    line_break  = "line_break"
    unsupported = "unsupported"


@dataclass
class Inline:
    """One inline span; emphasis spans carry their own children."""
    kind:     InlineKind
    text:     str = ""
    children: list["Inline"] = field(default_factory=list)
    source:   Optional[str] = None      # markdown-it token type, for warnings


@dataclass
class Block:
    """One top-level markdown block in document order."""
    kind:    BlockKind
    level:   Optional[int] = None       # heading level, clamped to 1-6
    inlines: list[Inline] = field(default_factory=list)
    text:    str = ""                   # raw text for code blocks
    ordered: bool = False               # list items: ordered vs bullet
    source:  Optional[str] = None       # markdown-it token type, for warnings


@dataclass
class SideChannel:
    """In-memory (markdown, assets) pair moved between container and staging dir."""
    markdown: str = ""
    assets:   dict[str, bytes] = field(default_factory=dict)


class SessionState(str, Enum):
    idle        = "Idle"
    extracting  = "Extracting"
    editing     = "Editing"
    embedding   = "Embedding"
    cleaning    = "Cleaning"
    terminated  = "Terminated"
    failed      = "Failed"


class SessionOutcome(BaseModel):
    """Result handed back to the CLI layer; never raised."""
    ok:        bool
    state:     SessionState
    container: Path
    message:   str = ""
    warnings:  list[str] = []
    embeds:    int = 0

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1
