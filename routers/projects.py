"""
Projects Router — /projects

Project picker: the caller's projects, newest first.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import crud
from database.database import get_db
from database.schemas import ProjectListResponse, ProjectSummary
from routers.dependencies import get_current_user_id

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=ProjectListResponse, response_model_by_alias=True)
def list_projects(
    subject: Optional[str] = Query(None, description="Filter by subject (partial match)"),
    limit: int = Query(10, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    projects = crud.get_projects_for_user(db, user_id, subject=subject, limit=limit)
    return ProjectListResponse(
        projects=[ProjectSummary.model_validate(p) for p in projects],
        count=len(projects),
    )
