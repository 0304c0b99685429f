"""
Templates Router — /templates

Catalog shown in the template picker: public templates plus the caller's own.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.database import get_db
from routers.dependencies import get_optional_user_id
from synthesis.schemas import TemplateCard
from synthesis.templates import TemplateCatalog, list_template_cards

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", response_model=List[TemplateCard], response_model_by_alias=True)
def list_templates(
    user_id: Optional[str] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    """Default templates first, then by usage."""
    return list_template_cards(TemplateCatalog(db), user_id)
