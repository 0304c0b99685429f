"""
Template Resolver — template id → StyleSheet.

Built-in templates define the visual styles of project PDFs. The database catalog
may hold the same ids (seeded at startup) plus user-made templates; resolution
always ends in a renderable StyleSheet and falls back to Classic Professional.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import crud
from database.models import Template
from synthesis.schemas import StyleSheet, TemplateCard
from synthesis.usage_tracker import increment_usage

log = logging.getLogger(__name__)


# ─── Built-in templates ────────────────────────────────────────────────────────

DEFAULT_TEMPLATE_ID = "tpl_classic_professional"
FALLBACK_PREVIEW_COLOR = "#7148FC"

BUILTIN_TEMPLATES: List[Dict[str, Any]] = [
    {
        "id": "tpl_classic_professional",
        "name": "Classic Professional",
        "description": "Traditional academic style with purple accents. Clean and formal.",
        "previewColor": "#7148FC",
        "colorScheme": {
            "primary": "#7148FC",
            "secondary": "#9B7EFC",
            "heading": "#1A1A1A",
            "text": "#333333",
            "muted": "#666666",
            "background": "#F5F3FF",
            "divider": "#E5E5E5",
        },
        "structure": {
            "headerStyle": "centered",
            "sectionStyle": "bar",
            "bulletStyle": "disc",
            "dividerStyle": "line",
            "fontFamily": "serif",
            "titleSize": 22,
            "headingSize": 14,
            "bodySize": 11,
        },
    },
    {
        "id": "tpl_modern_minimal",
        "name": "Modern Minimal",
        "description": "Clean, minimalist design with teal accents. Contemporary feel.",
        "previewColor": "#0D9488",
        "colorScheme": {
            "primary": "#0D9488",
            "secondary": "#14B8A6",
            "heading": "#0F172A",
            "text": "#334155",
            "muted": "#64748B",
            "background": "#F0FDFA",
            "divider": "#E2E8F0",
        },
        "structure": {
            "headerStyle": "left-aligned",
            "sectionStyle": "underline",
            "bulletStyle": "dash",
            "dividerStyle": "dashed",
            "fontFamily": "sans",
            "titleSize": 20,
            "headingSize": 13,
            "bodySize": 10,
        },
    },
    {
        "id": "tpl_bold_academic",
        "name": "Bold Academic",
        "description": "Strong, structured layout with blue accents. Serious and impactful.",
        "previewColor": "#2563EB",
        "colorScheme": {
            "primary": "#2563EB",
            "secondary": "#3B82F6",
            "heading": "#111827",
            "text": "#1F2937",
            "muted": "#6B7280",
            "background": "#EFF6FF",
            "divider": "#D1D5DB",
        },
        "structure": {
            "headerStyle": "boxed",
            "sectionStyle": "boxed",
            "bulletStyle": "square",
            "dividerStyle": "double",
            "fontFamily": "serif",
            "titleSize": 24,
            "headingSize": 14,
            "bodySize": 11,
        },
    },
    {
        "id": "tpl_elegant_rust",
        "name": "Elegant Earth",
        "description": "Warm, earthy tones with rust accents. Sophisticated and grounded.",
        "previewColor": "#B45309",
        "colorScheme": {
            "primary": "#B45309",
            "secondary": "#D97706",
            "heading": "#292524",
            "text": "#44403C",
            "muted": "#78716C",
            "background": "#FFFBEB",
            "divider": "#D6D3D1",
        },
        "structure": {
            "headerStyle": "centered",
            "sectionStyle": "underline",
            "bulletStyle": "arrow",
            "dividerStyle": "line",
            "fontFamily": "serif",
            "titleSize": 22,
            "headingSize": 14,
            "bodySize": 11,
        },
    },
    {
        "id": "tpl_vibrant_green",
        "name": "Fresh & Vibrant",
        "description": "Energetic green theme. Perfect for Agriculture and Science projects.",
        "previewColor": "#16A34A",
        "colorScheme": {
            "primary": "#16A34A",
            "secondary": "#22C55E",
            "heading": "#14532D",
            "text": "#166534",
            "muted": "#4D7C0F",
            "background": "#F0FDF4",
            "divider": "#BBF7D0",
        },
        "structure": {
            "headerStyle": "left-aligned",
            "sectionStyle": "bar",
            "bulletStyle": "disc",
            "dividerStyle": "line",
            "fontFamily": "sans",
            "titleSize": 20,
            "headingSize": 13,
            "bodySize": 11,
        },
    },
]

BUILTIN_BY_ID: Dict[str, Dict[str, Any]] = {t["id"]: t for t in BUILTIN_TEMPLATES}


def _load_json(value: Any) -> Any:
    # Older rows stored the scheme as a JSON string
    if isinstance(value, str):
        return json.loads(value)
    return value


def style_from_parts(color_scheme: Any, structure: Any) -> StyleSheet:
    """Build a StyleSheet from stored JSON parts. Raises ValueError on bad input."""
    return StyleSheet.model_validate({
        "colorScheme": _load_json(color_scheme),
        "structure": _load_json(structure),
    })


def builtin_style(template_id: str) -> StyleSheet:
    tpl = BUILTIN_BY_ID[template_id]
    return style_from_parts(tpl["colorScheme"], tpl["structure"])


DEFAULT_STYLE = builtin_style(DEFAULT_TEMPLATE_ID)


# ─── Catalog (database) ────────────────────────────────────────────────────────

class TemplateCatalog:
    """Template store backed by the templates table."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, template_id: str) -> Optional[Template]:
        return crud.get_template(self.db, template_id)

    def list_visible(self, user_id: Optional[str] = None) -> List[Template]:
        return crud.get_visible_templates(self.db, user_id)

    def increment_usage(self, template_id: str) -> bool:
        """Bump usage_count inside the caller's transaction. False when no DB row exists."""
        return increment_usage(self.db, template_id)

    def seed_defaults(self) -> int:
        """Insert the built-in templates that are not in the table yet."""
        created = 0
        for tpl in BUILTIN_TEMPLATES:
            if crud.get_template(self.db, tpl["id"]):
                log.info(f"[TEMPLATES] '{tpl['name']}' already exists, skipping")
                continue
            crud.create_template(
                self.db,
                template_id=tpl["id"],
                name=tpl["name"],
                description=tpl["description"],
                preview_color=tpl["previewColor"],
                color_scheme=tpl["colorScheme"],
                structure=tpl["structure"],
                is_default=True,
                is_public=True,
            )
            created += 1
        self.db.commit()
        log.info(f"[TEMPLATES] Seeded {created} built-in template(s)")
        return created


# ─── Resolution ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ResolvedTemplate:
    template_id: str
    name: str
    style: StyleSheet
    from_catalog: bool


def _default_resolution() -> ResolvedTemplate:
    return ResolvedTemplate(
        template_id=DEFAULT_TEMPLATE_ID,
        name=BUILTIN_BY_ID[DEFAULT_TEMPLATE_ID]["name"],
        style=DEFAULT_STYLE,
        from_catalog=False,
    )


def resolve_template(template_id: Optional[str], catalog: Optional[TemplateCatalog] = None,
                     user_id: Optional[str] = None) -> ResolvedTemplate:
    """
    Resolve a template id to a renderable style. Never raises.

    Order: catalog row → built-in template → Classic Professional. A private
    catalog row is only used for its owner.
    """
    if not template_id:
        return _default_resolution()

    if catalog is not None:
        try:
            row = catalog.get(template_id)
        except SQLAlchemyError as e:
            log.warning(f"[TEMPLATES] Catalog lookup failed for '{template_id}': {e}")
            row = None
        if row is not None and not (row.is_public or (user_id and row.user_id == user_id)):
            log.info(f"[TEMPLATES] Template '{template_id}' is private to another user, ignoring")
            row = None
        if row is not None:
            try:
                style = style_from_parts(row.color_scheme, row.structure)
                return ResolvedTemplate(row.id, row.name, style, from_catalog=True)
            except (ValueError, ValidationError) as e:
                log.warning(f"[TEMPLATES] Template '{template_id}' has an unusable style, falling back: {e}")

    if template_id in BUILTIN_BY_ID:
        tpl = BUILTIN_BY_ID[template_id]
        return ResolvedTemplate(tpl["id"], tpl["name"], builtin_style(template_id), from_catalog=False)

    log.info(f"[TEMPLATES] Unknown template '{template_id}', using {DEFAULT_TEMPLATE_ID}")
    return _default_resolution()


def resolve_style(template_id: Optional[str], catalog: Optional[TemplateCatalog] = None,
                  user_id: Optional[str] = None) -> StyleSheet:
    return resolve_template(template_id, catalog, user_id).style


# ─── Catalog listing ───────────────────────────────────────────────────────────

def list_template_cards(catalog: Optional[TemplateCatalog], user_id: Optional[str] = None) -> List[TemplateCard]:
    """Public + own templates, default first then most used; built-ins when the table is empty."""
    rows: List[Template] = []
    if catalog is not None:
        try:
            rows = catalog.list_visible(user_id)
        except SQLAlchemyError as e:
            log.warning(f"[TEMPLATES] Listing failed, serving built-ins: {e}")

    if not rows:
        return [
            TemplateCard(
                id=t["id"],
                name=t["name"],
                description=t["description"],
                preview_color=t["previewColor"],
                is_default=True,
                is_public=True,
                usage_count=0,
            )
            for t in BUILTIN_TEMPLATES
        ]

    return [
        TemplateCard(
            id=row.id,
            name=row.name,
            description=row.description,
            preview_color=row.preview_color
            or BUILTIN_BY_ID.get(row.id, {}).get("previewColor", FALLBACK_PREVIEW_COLOR),
            is_default=row.is_default,
            is_public=row.is_public,
            usage_count=row.usage_count,
        )
        for row in rows
    ]
