"""
Usage Tracker

Increments usage_count on the Template row a stored artifact was rendered with.
Runs inside the caller's transaction: no commit, no rollback here.
"""

from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import update

from database.models import Template


def increment_usage(db: Session, template_id: Optional[str]) -> bool:
    """
    Increment usage_count for the template used to render an artifact.

    Args:
        db: Database session (transaction owned by the caller)
        template_id: Template ID; built-in templates without a row are ignored

    Returns:
        True when a row was updated
    """
    if not template_id:
        return False
    result = db.execute(
        update(Template)
        .where(Template.id == template_id)
        .values(usage_count=Template.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def collect_used_template_ids(events) -> List[str]:
    """
    Extract the template IDs rendered by the fulfilled events of one turn.

    Args:
        events: FulfillmentEvent list

    Returns:
        Deduplicated list of template IDs, in first-use order
    """
    seen = []
    for event in events:
        if event.fulfilled and event.template_id and event.template_id not in seen:
            seen.append(event.template_id)
    return seen
