"""
Layout Engine — styled text blocks → fixed-size pages of positioned text runs.

Pure: the same (blocks, geometry, metrics) always produce the same pages.

- Greedy word wrap at (content width - indent)
- Words wider than a whole line are split at character boundaries
- A new page starts before any line that would cross (margin + font size)
- Divider blocks become rules with a fixed gap below them

Coordinates are PDF points with the origin bottom-left, as ReportLab's canvas
expects them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.pdfbase.pdfmetrics import stringWidth


# ─── Geometry & metrics ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PageGeometry:
    width: float
    height: float
    margin: float

    @property
    def content_width(self) -> float:
        return self.width - 2 * self.margin

    @property
    def top(self) -> float:
        return self.height - self.margin


A4_GEOMETRY = PageGeometry(width=A4[0], height=A4[1], margin=50)

DIVIDER_GAP = 15


class FontMetrics:
    """Text width provider. Defaults to ReportLab's standard-font metrics."""

    def __init__(self, width_fn: Optional[Callable[[str, str, float], float]] = None):
        self._width_fn = width_fn or stringWidth

    def width(self, text: str, font: str, size: float) -> float:
        return self._width_fn(text, font, size)


DEFAULT_METRICS = FontMetrics()


# ─── Blocks ────────────────────────────────────────────────────────────────────

class BlockKind(str, Enum):
    TITLE = "title"
    META_LINE = "metaLine"
    SECTION_HEADING = "sectionHeading"
    SUBHEADING = "subheading"
    PARAGRAPH = "paragraph"
    BULLET_LIST = "bulletList"
    DIVIDER = "divider"


LINE_HEIGHTS = {
    BlockKind.TITLE: 1.8,
    BlockKind.META_LINE: 1.5,
    BlockKind.SECTION_HEADING: 1.6,
    BlockKind.SUBHEADING: 1.3,
    BlockKind.PARAGRAPH: 1.5,
    BlockKind.BULLET_LIST: 1.4,
    BlockKind.DIVIDER: 1.0,
}

BULLET_GLYPHS = {
    "disc": "•",
    "square": "■",
    "dash": "–",
    "arrow": "»",
}


@dataclass(frozen=True)
class TextStyle:
    font: str
    size: float
    color: str = "#000000"
    line_height: float = 1.5


@dataclass
class TextBlock:
    kind: BlockKind
    style: TextStyle
    text: str = ""
    items: List[str] = field(default_factory=list)   # bulletList only
    indent: float = 0
    space_before: float = 0
    space_after: float = 0
    align: str = "left"                              # left | center
    bullet: str = BULLET_GLYPHS["disc"]
    numbered: bool = False


# ─── Output ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TextRun:
    x: float
    y: float
    text: str
    font: str
    size: float
    color: str
    kind: BlockKind
    width: float


@dataclass(frozen=True)
class Rule:
    x1: float
    y: float
    x2: float
    kind: BlockKind = BlockKind.DIVIDER


@dataclass
class Page:
    number: int
    runs: List[TextRun] = field(default_factory=list)
    rules: List[Rule] = field(default_factory=list)


@dataclass
class LayoutResult:
    pages: List[Page]
    geometry: PageGeometry

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def line_count(self) -> int:
        return sum(len(p.runs) for p in self.pages)

    def runs(self) -> Iterable[TextRun]:
        for page in self.pages:
            yield from page.runs


# ─── Word wrap ─────────────────────────────────────────────────────────────────

def _split_word(word: str, font: str, size: float, max_width: float,
                metrics: FontMetrics) -> Tuple[List[str], str]:
    """Break an over-wide word into full-width chunks plus a trailing remainder."""
    chunks = []
    current = ""
    for ch in word:
        candidate = current + ch
        if current and metrics.width(candidate, font, size) > max_width:
            chunks.append(current)
            current = ch
        else:
            current = candidate
    return chunks, current


def wrap_text(text: str, font: str, size: float, max_width: float,
              metrics: Optional[FontMetrics] = None) -> List[str]:
    """
    Greedy word wrap.

    Explicit newlines are hard breaks; blank lines produce nothing. A word is
    appended while the line still fits, otherwise the line is flushed.
    """
    metrics = metrics or DEFAULT_METRICS
    lines: List[str] = []

    for raw in (text or "").splitlines():
        line = ""
        for word in raw.split():
            candidate = f"{line} {word}" if line else word
            if metrics.width(candidate, font, size) <= max_width:
                line = candidate
                continue
            if line:
                lines.append(line)
            if metrics.width(word, font, size) <= max_width:
                line = word
            else:
                chunks, line = _split_word(word, font, size, max_width, metrics)
                lines.extend(chunks)
        if line:
            lines.append(line)

    return lines


# ─── Layout ────────────────────────────────────────────────────────────────────

class _Cursor:
    def __init__(self, geometry: PageGeometry):
        self.geometry = geometry
        self.pages = [Page(number=1)]
        self.y = geometry.top

    @property
    def page(self) -> Page:
        return self.pages[-1]

    def new_page(self) -> None:
        self.pages.append(Page(number=len(self.pages) + 1))
        self.y = self.geometry.top


def block_lines(block: TextBlock, geometry: PageGeometry,
                metrics: Optional[FontMetrics] = None) -> List[str]:
    """The wrapped lines a block will occupy (dividers occupy none)."""
    if block.kind == BlockKind.DIVIDER:
        return []
    style = block.style
    max_width = geometry.content_width - block.indent
    if block.kind == BlockKind.BULLET_LIST:
        lines = []
        for i, item in enumerate(block.items, 1):
            prefix = f"{i}." if block.numbered else block.bullet
            lines.extend(wrap_text(f"{prefix} {item}", style.font, style.size, max_width, metrics))
        return lines
    return wrap_text(block.text, style.font, style.size, max_width, metrics)


def layout(blocks: Sequence[TextBlock], geometry: PageGeometry = A4_GEOMETRY,
           metrics: Optional[FontMetrics] = None) -> LayoutResult:
    """Place blocks on as few pages as the greedy policy allows."""
    metrics = metrics or DEFAULT_METRICS
    cursor = _Cursor(geometry)
    left = geometry.margin

    for block in blocks:
        cursor.y -= block.space_before

        if block.kind == BlockKind.DIVIDER:
            if cursor.y < geometry.margin:
                cursor.new_page()
            cursor.page.rules.append(Rule(x1=left, y=cursor.y, x2=geometry.width - geometry.margin))
            cursor.y -= DIVIDER_GAP
            cursor.y -= block.space_after
            continue

        style = block.style
        step = style.size * style.line_height
        for line in block_lines(block, geometry, metrics):
            if cursor.y < geometry.margin + style.size:
                cursor.new_page()
            line_width = metrics.width(line, style.font, style.size)
            x = left + block.indent
            if block.align == "center":
                x = left + block.indent + max(0.0, (geometry.content_width - block.indent - line_width) / 2)
            cursor.page.runs.append(TextRun(
                x=x,
                y=cursor.y,
                text=line,
                font=style.font,
                size=style.size,
                color=style.color,
                kind=block.kind,
                width=line_width,
            ))
            cursor.y -= step

        cursor.y -= block.space_after

    return LayoutResult(pages=cursor.pages, geometry=geometry)
