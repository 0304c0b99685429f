"""
Response shape resolution for one fulfilled chat turn.

Attachment priority: project > pdf > templates. messageType is the attachment kind,
prefixed with "normal-with-" when the agent also produced text.
"""

from typing import List, Optional

from synthesis.schemas import ChatTurnResponse, FileAttachment, TemplateCard

FALLBACK_TEXT = "Sorry, I couldn't process that request. Please try again."

TEMPLATE_PHRASES = (
    "choose a template",
    "select a template",
    "pick a template",
    "template style",
    "which template",
    "available templates",
)

_SIZE_UNITS = ("B", "KB", "MB", "GB")


def format_file_size(num_bytes: int) -> str:
    """Human readable size: 0 → '0 B', 1536 → '1.5 KB' (≤ 2 decimals, no trailing zeros)."""
    if not num_bytes or num_bytes <= 0:
        return "0 B"
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    value = round(value, 2)
    if value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value = round(value / 1024, 2)
        unit += 1
    return f"{value:g} {_SIZE_UNITS[unit]}"


def mentions_template_selection(text: Optional[str]) -> bool:
    lowered = (text or "").lower()
    return any(phrase in lowered for phrase in TEMPLATE_PHRASES)


def build_response(
    text: Optional[str],
    project: Optional[FileAttachment] = None,
    pdf: Optional[FileAttachment] = None,
    templates: Optional[List[TemplateCard]] = None,
) -> ChatTurnResponse:
    """
    Pick the single attachment to show and derive messageType.

    `templates` is only attached when neither a project nor a pdf was produced.
    """
    text = (text or "").strip()

    if project is not None:
        kind = "project"
    elif pdf is not None:
        kind = "pdf"
    elif templates is not None:
        kind = "templates"
    else:
        return ChatTurnResponse(message_type="normal", text=text or FALLBACK_TEXT)

    return ChatTurnResponse(
        message_type=f"normal-with-{kind}" if text else kind,
        text=text,
        project=project if kind == "project" else None,
        pdf=pdf if kind == "pdf" else None,
        templates=templates if kind == "templates" else None,
    )
