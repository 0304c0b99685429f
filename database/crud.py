"""
CRUD operations for users, templates, projects and fulfilment records
All database operations go through these functions

Functions that run inside the fulfilment transaction only flush; the
dispatcher owns commit/rollback.
"""

from sqlalchemy import or_
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from database import models


# ==========================================
# USER CRUD
# ==========================================

def create_user(db: Session, user_id: Optional[str] = None, email: Optional[str] = None,
                name: Optional[str] = None, credits: int = 0) -> models.User:
    """Create a user with an opening credit balance"""
    db_user = models.User(email=email, name=name, credits=credits)
    if user_id:
        db_user.id = user_id
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user


# ==========================================
# TEMPLATE CRUD
# ==========================================

def create_template(db: Session, name: str, color_scheme: Dict[str, Any], structure: Dict[str, Any],
                    template_id: Optional[str] = None, description: Optional[str] = None,
                    preview_color: Optional[str] = None, is_default: bool = False,
                    is_public: bool = True, user_id: Optional[str] = None) -> models.Template:
    """Add a template (caller commits)"""
    db_template = models.Template(
        name=name,
        description=description,
        preview_color=preview_color,
        color_scheme=color_scheme,
        structure=structure,
        is_default=is_default,
        is_public=is_public,
        user_id=user_id,
    )
    if template_id:
        db_template.id = template_id
    db.add(db_template)
    db.flush()
    return db_template


def get_template(db: Session, template_id: str) -> Optional[models.Template]:
    """Get template by ID"""
    return db.query(models.Template).filter(models.Template.id == template_id).first()


def get_visible_templates(db: Session, user_id: Optional[str] = None) -> List[models.Template]:
    """Public templates plus the user's own, default first then most used"""
    query = db.query(models.Template)
    if user_id:
        query = query.filter(or_(models.Template.is_public.is_(True), models.Template.user_id == user_id))
    else:
        query = query.filter(models.Template.is_public.is_(True))
    return query.order_by(
        models.Template.is_default.desc(),
        models.Template.usage_count.desc(),
        models.Template.name,
    ).all()


# ==========================================
# PROJECT CRUD
# ==========================================

def add_project(db: Session, user_id: str, title: str, content: Dict[str, Any], file_name: str,
                download_url: str, file_size: int, template_id: Optional[str] = None,
                **details: Any) -> models.Project:
    """Add a project row inside the current transaction (caller commits)"""
    db_project = models.Project(
        user_id=user_id,
        title=title,
        content=content,
        file_name=file_name,
        download_url=download_url,
        file_size=file_size,
        template_id=template_id,
        **details,
    )
    db.add(db_project)
    db.flush()
    return db_project


def get_project_for_user(db: Session, project_id: str, user_id: str) -> Optional[models.Project]:
    """Get a project only if the user owns it"""
    return db.query(models.Project).filter(
        models.Project.id == project_id,
        models.Project.user_id == user_id,
    ).first()


def get_projects_for_user(db: Session, user_id: str, subject: Optional[str] = None,
                          limit: int = 20) -> List[models.Project]:
    """User's projects, newest first, optionally filtered by subject (case-insensitive match)"""
    query = db.query(models.Project).filter(models.Project.user_id == user_id)
    if subject:
        query = query.filter(models.Project.subject.ilike(f"%{subject}%"))
    return query.order_by(models.Project.created_at.desc(), models.Project.id.desc()).limit(limit).all()


# ==========================================
# FULFILMENT RECORD CRUD
# ==========================================

def get_fulfillment_record(db: Session, tool_call_id: str) -> Optional[models.FulfillmentRecord]:
    """Get the record left by an already-fulfilled tool call"""
    return db.query(models.FulfillmentRecord).filter(
        models.FulfillmentRecord.tool_call_id == tool_call_id
    ).first()


def add_fulfillment_record(db: Session, tool_call_id: str, tool_name: str, user_id: str,
                           project_id: Optional[str] = None,
                           file_name: Optional[str] = None) -> models.FulfillmentRecord:
    """Record a fulfilled tool call inside the current transaction (caller commits)"""
    record = models.FulfillmentRecord(
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        user_id=user_id,
        project_id=project_id,
        file_name=file_name,
    )
    db.add(record)
    db.flush()
    return record
