"""
Document Compiler — rubric + style + metadata → PDF bytes.

Pipeline:
  1. Emit an ordered list of styled TextBlocks (title, metadata line, stages)
  2. Lay them out on A4 pages (synthesis.layout)
  3. Serialise the pages with the ReportLab canvas: heading decorations,
     dividers, "Page N of M" footer, document info

compile_project() and compile_document() never raise; failures come back as
CompileResult(success=False, error=...).
"""

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import date
from io import BytesIO
from typing import List, Optional, Sequence

from reportlab.lib import colors
from reportlab.pdfgen import canvas

from synthesis.layout import (
    A4_GEOMETRY,
    BULLET_GLYPHS,
    LINE_HEIGHTS,
    BlockKind,
    FontMetrics,
    LayoutResult,
    PageGeometry,
    TextBlock,
    TextStyle,
    layout,
)
from synthesis.rubric import STAGE_GUIDES
from synthesis.schemas import Idea, PdfSection, ProjectMetadata, RubricDocument, StyleSheet

log = logging.getLogger(__name__)

# (regular, bold, italic) standard Type 1 faces
FONT_FAMILIES = {
    "serif": ("Times-Roman", "Times-Bold", "Times-Italic"),
    "sans": ("Helvetica", "Helvetica-Bold", "Helvetica-Oblique"),
    "mono": ("Courier", "Courier-Bold", "Courier-Oblique"),
}

FOOTER_Y = 25
FOOTER_SIZE = 9
SLUG_MAX_LENGTH = 50
PDF_CREATOR = "SBP Studio"


@dataclass
class CompileResult:
    success: bool
    pdf_bytes: bytes = b""
    file_name: str = ""
    page_count: int = 0
    line_count: int = 0
    error: Optional[str] = None


def make_file_name(title: str) -> str:
    """`slug(title)_{16 hex}.pdf` — slug keeps ASCII alphanumerics, everything else becomes '_'."""
    slug = re.sub(r"[^A-Za-z0-9]", "_", (title or "").strip())[:SLUG_MAX_LENGTH] or "document"
    return f"{slug}_{secrets.token_hex(8)}.pdf"


def format_render_date(value: Optional[date] = None) -> str:
    d = value or date.today()
    return f"{d.day} {d:%B %Y}"


# ─── Block styles ──────────────────────────────────────────────────────────────

class BlockStyles:
    """TextStyles for every block kind, derived from one StyleSheet."""

    def __init__(self, style: StyleSheet):
        s = style.structure
        c = style.color_scheme
        regular, bold, italic = FONT_FAMILIES[s.font_family]
        body = s.body_size

        self.sheet = style
        self.bullet = BULLET_GLYPHS[s.bullet_style]
        self.title_align = "left" if s.header_style == "left-aligned" else "center"

        heading_color = c.primary if s.section_style in ("bar", "boxed") else c.heading
        self.title = TextStyle(bold, s.title_size, c.primary, LINE_HEIGHTS[BlockKind.TITLE])
        self.meta = TextStyle(italic, max(body - 1, 6), c.muted, LINE_HEIGHTS[BlockKind.META_LINE])
        self.heading = TextStyle(bold, s.heading_size, heading_color, LINE_HEIGHTS[BlockKind.SECTION_HEADING])
        self.subheading = TextStyle(bold, body, c.heading, LINE_HEIGHTS[BlockKind.SUBHEADING])
        self.label = TextStyle(bold, max(body - 1, 6), c.heading, LINE_HEIGHTS[BlockKind.SUBHEADING])
        self.paragraph = TextStyle(regular, body, c.text, LINE_HEIGHTS[BlockKind.PARAGRAPH])
        self.bullets = TextStyle(regular, body, c.text, LINE_HEIGHTS[BlockKind.BULLET_LIST])
        self.divider = TextStyle(regular, body, c.divider, LINE_HEIGHTS[BlockKind.DIVIDER])


class _Blocks:
    """Small builder so emission code reads top to bottom like the document."""

    def __init__(self, styles: BlockStyles):
        self.styles = styles
        self.items: List[TextBlock] = []

    def title(self, text: str):
        self.items.append(TextBlock(BlockKind.TITLE, self.styles.title, text=text,
                                    align=self.styles.title_align, space_after=4))

    def meta(self, text: str):
        self.items.append(TextBlock(BlockKind.META_LINE, self.styles.meta, text=text,
                                    align=self.styles.title_align))

    def divider(self):
        self.items.append(TextBlock(BlockKind.DIVIDER, self.styles.divider, space_before=10))

    def heading(self, text: str):
        self.items.append(TextBlock(BlockKind.SECTION_HEADING, self.styles.heading, text=text,
                                    indent=10, space_before=20, space_after=10))

    def subheading(self, text: str, indent: float = 0, space_before: float = 12):
        self.items.append(TextBlock(BlockKind.SUBHEADING, self.styles.subheading, text=text,
                                    indent=indent, space_before=space_before, space_after=5))

    def label(self, text: str, indent: float = 10):
        self.items.append(TextBlock(BlockKind.SUBHEADING, self.styles.label, text=text,
                                    indent=indent, space_before=5))

    def paragraph(self, text: str, indent: float = 10, space_after: float = 10):
        self.items.append(TextBlock(BlockKind.PARAGRAPH, self.styles.paragraph, text=text,
                                    indent=indent, space_after=space_after))

    def bullets(self, items: Sequence[str], indent: float = 15, numbered: bool = False):
        self.items.append(TextBlock(BlockKind.BULLET_LIST, self.styles.bullets, items=list(items),
                                    indent=indent, bullet=self.styles.bullet, numbered=numbered,
                                    space_after=6))


# ─── Block emission ────────────────────────────────────────────────────────────

def metadata_line(metadata: ProjectMetadata) -> str:
    parts = [
        ("Author", metadata.author),
        ("Subject", metadata.subject),
        ("Level", metadata.level),
        ("School", metadata.school),
    ]
    line = [f"{label}: {value}" for label, value in parts if value]
    line.append(f"Date: {format_render_date(metadata.render_date)}")
    return " | ".join(line)


def _candidate_line(metadata: ProjectMetadata) -> Optional[str]:
    parts = [
        ("Candidate Number", metadata.candidate_number),
        ("Form/Grade", metadata.form_grade),
    ]
    line = [f"{label}: {value}" for label, value in parts if value]
    return " | ".join(line) or None


def _marks(n: int, show: bool) -> str:
    if not show:
        return ""
    return f" [{n} mark{'s' if n != 1 else ''}]"


def _stage_heading(b: _Blocks, key: str, show_marks: bool):
    guide = STAGE_GUIDES[key]
    b.heading(f"STAGE {guide.number}: {guide.title.upper()}{_marks(guide.marks, show_marks)}")


def _ideas(b: _Blocks, stage_no: int, noun: str, ideas: Sequence[Idea], show_marks: bool):
    for i, idea in enumerate(ideas, 1):
        b.subheading(f"{stage_no}.{i} {noun} {i}: {idea.title}{_marks(3, show_marks)}")
        b.paragraph(idea.description, space_after=4)
        b.label("Merits/Advantages:")
        b.bullets(idea.merits, indent=20)
        b.label("Demerits/Disadvantages:")
        b.bullets(idea.demerits, indent=20)


def build_project_blocks(rubric: RubricDocument, style: StyleSheet,
                         metadata: ProjectMetadata, show_marks: bool = False) -> List[TextBlock]:
    """Emit the full six-stage document in rubric order."""
    b = _Blocks(BlockStyles(style))
    f = {key: {fg.name: fg for fg in guide.fields} for key, guide in STAGE_GUIDES.items()}

    b.title(metadata.title)
    b.meta(metadata_line(metadata))
    candidate = _candidate_line(metadata)
    if candidate:
        b.meta(candidate)
    b.divider()

    # Stage 1
    s1 = rubric.stage1
    _stage_heading(b, "stage1", show_marks)
    for n, (name, value) in enumerate((
        ("problemDescription", s1.problem_description),
        ("statementOfIntent", s1.statement_of_intent),
    ), 1):
        fg = f["stage1"][name]
        b.subheading(f"1.{n} {fg.label}{_marks(fg.marks, show_marks)}")
        b.paragraph(value)
    fg = f["stage1"]["specifications"]
    b.subheading(f"1.3 {fg.label}{_marks(fg.marks, show_marks)}")
    b.bullets(s1.specifications)
    b.divider()

    # Stage 2
    _stage_heading(b, "stage2", show_marks)
    _ideas(b, 2, "Related Idea", rubric.stage2.related_ideas, show_marks)
    b.divider()

    # Stage 3
    _stage_heading(b, "stage3", show_marks)
    _ideas(b, 3, "Possible Solution", rubric.stage3.possible_solutions, show_marks)
    b.divider()

    # Stage 4
    s4 = rubric.stage4
    _stage_heading(b, "stage4", show_marks)
    fg = f["stage4"]["chosenSolution"]
    b.subheading(f"4.1 {fg.label}{_marks(fg.marks, show_marks)}")
    b.paragraph(s4.chosen_solution)
    fg = f["stage4"]["justification"]
    b.subheading(f"4.2 {fg.label}{_marks(fg.marks, show_marks)}")
    b.bullets(s4.justification, indent=10, numbered=True)
    fg = f["stage4"]["refinements"]
    b.subheading(f"4.3 {fg.label}{_marks(fg.marks, show_marks)}")
    for i, ref in enumerate(s4.refinements, 1):
        b.subheading(f"{i}. {ref.title}", indent=10, space_before=5)
        b.paragraph(ref.description, indent=20, space_after=8)
    b.divider()

    # Stage 5
    s5 = rubric.stage5
    _stage_heading(b, "stage5", show_marks)
    b.subheading(f"5.1 Presentation Type: {s5.presentation_type.capitalize()}")
    b.paragraph(s5.description)
    b.label("Key Features:")
    b.bullets(s5.features, indent=20)
    b.label("Implementation:")
    b.paragraph(s5.implementation)
    b.divider()

    # Stage 6
    s6 = rubric.stage6
    _stage_heading(b, "stage6", show_marks)
    fg = f["stage6"]["relevanceToIntent"]
    b.subheading(f"6.1 {fg.label}{_marks(fg.marks, show_marks)}")
    b.paragraph(s6.relevance_to_intent)
    fg = f["stage6"]["challenges"]
    b.subheading(f"6.2 {fg.label}{_marks(fg.marks, show_marks)}")
    b.bullets(s6.challenges)
    fg = f["stage6"]["recommendations"]
    b.subheading(f"6.3 {fg.label}{_marks(fg.marks, show_marks)}")
    b.bullets(s6.recommendations)

    return b.items


def _paragraphs(text: str) -> List[str]:
    return [p.strip() for p in (text or "").split("\n\n") if p.strip()]


def build_document_blocks(title: str, content: str, sections: Sequence[PdfSection],
                          style: StyleSheet, metadata: ProjectMetadata) -> List[TextBlock]:
    """Free-form document: title, metadata line, body paragraphs, then headed sections."""
    b = _Blocks(BlockStyles(style))
    b.title(title)
    b.meta(metadata_line(metadata))
    b.divider()
    for para in _paragraphs(content):
        b.paragraph(para, indent=0, space_after=15)
    for section in sections:
        b.heading(section.heading)
        for para in _paragraphs(section.content):
            b.paragraph(para, indent=0)
    return b.items


# ─── PDF serialisation ─────────────────────────────────────────────────────────

def _decorate_heading(c: canvas.Canvas, run, style: StyleSheet, geometry: PageGeometry):
    scheme = style.color_scheme
    left = geometry.margin
    width = geometry.content_width
    section_style = style.structure.section_style

    if section_style == "bar":
        c.setFillColor(colors.HexColor(scheme.background))
        c.rect(left, run.y - 6, width, run.size + 12, stroke=0, fill=1)
        c.setStrokeColor(colors.HexColor(scheme.primary))
        c.setLineWidth(2)
        c.line(left, run.y - 6, left + width, run.y - 6)
    elif section_style == "underline":
        c.setStrokeColor(colors.HexColor(scheme.primary))
        c.setLineWidth(1.5)
        c.line(left, run.y - 4, left + width, run.y - 4)
    elif section_style == "boxed":
        c.setStrokeColor(colors.HexColor(scheme.primary))
        c.setLineWidth(1)
        c.rect(left, run.y - 6, width, run.size + 12, stroke=1, fill=0)


def _draw_divider(c: canvas.Canvas, rule, style: StyleSheet):
    divider_style = style.structure.divider_style
    if divider_style == "none":
        return
    c.setStrokeColor(colors.HexColor(style.color_scheme.divider))
    c.setLineWidth(1)
    if divider_style == "dashed":
        c.setDash(4, 3)
        c.line(rule.x1, rule.y, rule.x2, rule.y)
        c.setDash()
    elif divider_style == "double":
        c.line(rule.x1, rule.y, rule.x2, rule.y)
        c.line(rule.x1, rule.y - 3, rule.x2, rule.y - 3)
    else:
        c.line(rule.x1, rule.y, rule.x2, rule.y)


def _box_title(c: canvas.Canvas, runs, style: StyleSheet, geometry: PageGeometry):
    if not runs:
        return
    top = max(r.y + r.size for r in runs) + 6
    bottom = min(r.y for r in runs) - 8
    c.setStrokeColor(colors.HexColor(style.color_scheme.primary))
    c.setLineWidth(1.5)
    c.rect(geometry.margin, bottom, geometry.content_width, top - bottom, stroke=1, fill=0)


def render_pdf(result: LayoutResult, style: StyleSheet, title: str,
               author: Optional[str] = None, subject: Optional[str] = None) -> bytes:
    """Draw laid-out pages onto a ReportLab canvas and return the PDF bytes."""
    geometry = result.geometry
    regular = FONT_FAMILIES[style.structure.font_family][0]
    total = result.page_count

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=(geometry.width, geometry.height))
    c.setTitle(title)
    if author:
        c.setAuthor(author)
    if subject:
        c.setSubject(subject)
    c.setCreator(PDF_CREATOR)

    for page in result.pages:
        # Decorations first so text sits on top of heading bars
        for run in page.runs:
            if run.kind == BlockKind.SECTION_HEADING:
                _decorate_heading(c, run, style, geometry)
        if style.structure.header_style == "boxed":
            _box_title(c, [r for r in page.runs if r.kind == BlockKind.TITLE], style, geometry)
        for rule in page.rules:
            _draw_divider(c, rule, style)

        for run in page.runs:
            c.setFillColor(colors.HexColor(run.color))
            c.setFont(run.font, run.size)
            c.drawString(run.x, run.y, run.text)

        footer = f"Page {page.number} of {total}"
        c.setFillColor(colors.HexColor(style.color_scheme.muted))
        c.setFont(regular, FOOTER_SIZE)
        c.drawCentredString(geometry.width / 2, FOOTER_Y, footer)
        c.showPage()

    c.save()
    return buffer.getvalue()


# ─── Entry points ──────────────────────────────────────────────────────────────

def _compile(blocks: List[TextBlock], style: StyleSheet, title: str, author: Optional[str],
             subject: Optional[str], geometry: PageGeometry,
             metrics: Optional[FontMetrics]) -> CompileResult:
    result = layout(blocks, geometry, metrics)
    pdf_bytes = render_pdf(result, style, title, author, subject)
    return CompileResult(
        success=True,
        pdf_bytes=pdf_bytes,
        file_name=make_file_name(title),
        page_count=result.page_count,
        line_count=result.line_count,
    )


def compile_project(rubric: RubricDocument, style: StyleSheet, metadata: ProjectMetadata,
                    show_marks: bool = False, geometry: PageGeometry = A4_GEOMETRY,
                    metrics: Optional[FontMetrics] = None) -> CompileResult:
    """Compile a validated rubric into a School-Based Project PDF."""
    try:
        blocks = build_project_blocks(rubric, style, metadata, show_marks)
        subject = f"{metadata.subject} - {metadata.level} School-Based Project" \
            if metadata.subject and metadata.level else metadata.subject
        compiled = _compile(blocks, style, metadata.title, metadata.author, subject, geometry, metrics)
        log.info(
            f"[COMPILE] '{metadata.title}' → {compiled.page_count} page(s), "
            f"{compiled.line_count} line(s), {len(compiled.pdf_bytes)} bytes"
        )
        return compiled
    except Exception as e:
        log.error(f"[COMPILE] Failed to compile '{metadata.title}': {e}", exc_info=True)
        return CompileResult(success=False, error=f"Failed to compile project: {e}")


def compile_document(title: str, content: str, sections: Sequence[PdfSection], style: StyleSheet,
                     metadata: ProjectMetadata, geometry: PageGeometry = A4_GEOMETRY,
                     metrics: Optional[FontMetrics] = None) -> CompileResult:
    """Compile a free-form titled document (generatePDF tool)."""
    try:
        blocks = build_document_blocks(title, content, sections, style, metadata)
        compiled = _compile(blocks, style, title, metadata.author, metadata.subject, geometry, metrics)
        log.info(f"[COMPILE] Document '{title}' → {compiled.page_count} page(s)")
        return compiled
    except Exception as e:
        log.error(f"[COMPILE] Failed to compile document '{title}': {e}", exc_info=True)
        return CompileResult(success=False, error=f"Failed to compile document: {e}")
