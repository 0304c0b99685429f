"""
Pydantic schemas for the project synthesis pipeline.

Layer 1 (content):  RubricDocument — the six marking-guide stages
Layer 2 (style):    StyleSheet — colour scheme + structural choices of a template
Layer 3 (wire):     ChatTurn in, ChatTurnResponse out (camelCase on the wire)
"""

from datetime import date
from typing import List, Optional, Dict, Any, Literal

from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """snake_case in Python, camelCase in JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ─── Layer 1: Rubric content ───────────────────────────────────────────────────

class Idea(FrozenCamelModel):
    """An existing idea (Stage 2) or an original possible solution (Stage 3)."""
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    merits: List[str] = Field(..., min_length=2)
    demerits: List[str] = Field(..., min_length=2)


class Refinement(FrozenCamelModel):
    """One development of the chosen solution (Stage 4, 2 marks each)."""
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)


class Stage1(FrozenCamelModel):
    problem_description: str = Field(..., min_length=1)
    statement_of_intent: str = Field(..., min_length=1)
    specifications: List[str] = Field(..., min_length=2)


class Stage2(FrozenCamelModel):
    related_ideas: List[Idea] = Field(..., min_length=3, max_length=3)


class Stage3(FrozenCamelModel):
    possible_solutions: List[Idea] = Field(..., min_length=3, max_length=3)


class Stage4(FrozenCamelModel):
    chosen_solution: str = Field(..., min_length=1)
    justification: List[str] = Field(..., min_length=2)
    refinements: List[Refinement] = Field(..., min_length=3, max_length=3)


class Stage5(FrozenCamelModel):
    presentation_type: Literal["artifact", "service", "product"]
    description: str = Field(..., min_length=1)
    features: List[str] = Field(..., min_length=4)
    implementation: str = Field(..., min_length=1)


class Stage6(FrozenCamelModel):
    relevance_to_intent: str = Field(..., min_length=1)
    challenges: List[str] = Field(..., min_length=2)
    recommendations: List[str] = Field(..., min_length=2)


class RubricDocument(FrozenCamelModel):
    """Validated content for one project. Immutable once built."""
    stage1: Stage1
    stage2: Stage2
    stage3: Stage3
    stage4: Stage4
    stage5: Stage5
    stage6: Stage6


STAGE_MODELS = {
    "stage1": Stage1,
    "stage2": Stage2,
    "stage3": Stage3,
    "stage4": Stage4,
    "stage5": Stage5,
    "stage6": Stage6,
}


class ProjectMetadata(CamelModel):
    """Cover details printed on the metadata line and stored on the project row."""
    title: str = Field(..., min_length=1)
    subject: Optional[str] = None
    author: Optional[str] = None
    level: Optional[str] = None          # "O-Level" | "A-Level"
    school: Optional[str] = None
    candidate_number: Optional[str] = None
    form_grade: Optional[str] = None
    description: Optional[str] = None
    render_date: Optional[date] = None


# ─── Layer 2: Style ────────────────────────────────────────────────────────────

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"

FONT_FAMILY_ALIASES = {
    "times": "serif",
    "helvetica": "sans",
    "courier": "mono",
}


class ColorScheme(FrozenCamelModel):
    primary: str = Field(..., pattern=HEX_COLOR)      # main accent
    secondary: str = Field(..., pattern=HEX_COLOR)
    heading: str = Field(..., pattern=HEX_COLOR)
    text: str = Field(..., pattern=HEX_COLOR)
    muted: str = Field(..., pattern=HEX_COLOR)
    background: str = Field(..., pattern=HEX_COLOR)   # section heading fill
    divider: str = Field(..., pattern=HEX_COLOR)


class TemplateStructure(FrozenCamelModel):
    header_style: Literal["centered", "left-aligned", "boxed"] = "centered"
    section_style: Literal["bar", "underline", "boxed", "minimal"] = "bar"
    bullet_style: Literal["disc", "square", "dash", "arrow"] = "disc"
    divider_style: Literal["line", "double", "dashed", "none"] = "line"
    font_family: Literal["serif", "sans", "mono"] = "serif"
    title_size: float = Field(22, ge=8, le=48)
    heading_size: float = Field(14, ge=6, le=36)
    body_size: float = Field(11, ge=6, le=24)

    @field_validator("font_family", mode="before")
    @classmethod
    def _legacy_font_names(cls, value):
        if isinstance(value, str):
            return FONT_FAMILY_ALIASES.get(value.lower(), value.lower())
        return value


class StyleSheet(FrozenCamelModel):
    color_scheme: ColorScheme
    structure: TemplateStructure


# ─── Layer 3: Wire contract ────────────────────────────────────────────────────

class ToolOutcome(CamelModel):
    """One agent tool call result, as handed over by the chat orchestration."""
    tool_name: Optional[str] = None
    success: bool = True
    args: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
    tool_call_id: Optional[str] = None

    @field_validator("args", mode="before")
    @classmethod
    def _args_object(cls, value):
        # null or non-object args fail later in their own outcome, not here
        return value if isinstance(value, dict) else {}

    @field_validator("success", mode="before")
    @classmethod
    def _null_success(cls, value):
        return False if value is None else value


class ChatTurn(CamelModel):
    response_text: str = ""
    tool_outcomes: List[ToolOutcome] = Field(default_factory=list)

    @field_validator("response_text", mode="before")
    @classmethod
    def _null_text(cls, value):
        return "" if value is None else value

    @field_validator("tool_outcomes", mode="before")
    @classmethod
    def _null_outcomes(cls, value):
        return [] if value is None else value


class PdfSection(CamelModel):
    heading: str
    content: str = ""


class GenerateProjectArgs(CamelModel):
    """Cover details of a generateProject call; the stage1..stage6 objects are read separately."""
    title: str = Field(..., min_length=1)
    subject: Optional[str] = None
    author: Optional[str] = None
    level: Optional[str] = None
    school: Optional[str] = None
    candidate_number: Optional[str] = None
    form_grade: Optional[str] = None
    description: Optional[str] = None
    template_id: Optional[str] = None

    def metadata(self) -> ProjectMetadata:
        return ProjectMetadata(**self.model_dump(exclude={"template_id"}))


class GeneratePdfArgs(CamelModel):
    title: str = Field(..., min_length=1)
    content: str = ""
    author: Optional[str] = None
    subject: Optional[str] = None
    sections: List[PdfSection] = Field(default_factory=list)


class EditProjectArgs(CamelModel):
    project_id: str
    title: Optional[str] = None
    subject: Optional[str] = None
    author: Optional[str] = None
    level: Optional[str] = None
    school: Optional[str] = None
    candidate_number: Optional[str] = None
    form_grade: Optional[str] = None
    description: Optional[str] = None
    template_id: Optional[str] = None
    edit_reason: Optional[str] = None


class RegenerateProjectArgs(CamelModel):
    project_id: str
    template_id: str


class FileAttachment(CamelModel):
    url: str
    name: str
    size: str                      # human readable, e.g. "1.5 KB"
    id: Optional[str] = None       # project attachments only
    title: Optional[str] = None


class TemplateCard(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    preview_color: str
    is_default: bool = False
    is_public: bool = True
    usage_count: int = 0


MessageType = Literal[
    "normal",
    "pdf",
    "normal-with-pdf",
    "project",
    "normal-with-project",
    "templates",
    "normal-with-templates",
]


class ChatTurnResponse(CamelModel):
    message_type: MessageType = "normal"
    text: str = ""
    pdf: Optional[FileAttachment] = None
    project: Optional[FileAttachment] = None
    templates: Optional[List[TemplateCard]] = None
