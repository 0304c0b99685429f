"""
Chat Router — /chat

Endpoints:
  POST /chat/fulfil      — fulfil one finished agent turn (tool outcomes → artifacts, credits)
  POST /chat/guardrail   — screen a user message before it reaches the agent
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.database import get_db
from database.schemas import GuardrailRequest, GuardrailResponse
from routers.dependencies import get_artifact_store, get_current_user_id
from synthesis.artifact_store import ArtifactStore
from synthesis.dispatcher import FulfillmentDispatcher
from synthesis.guardrails import classify
from synthesis.schemas import ChatTurn, ChatTurnResponse

router = APIRouter(prefix="/chat", tags=["chat"])

log = logging.getLogger("synthesis.pipeline")
logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")


@router.post("/fulfil", response_model=ChatTurnResponse, response_model_by_alias=True)
def fulfil_turn(
    turn: ChatTurn,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    store: ArtifactStore = Depends(get_artifact_store),
):
    """
    **Fulfil a finished chat turn.**

    Takes the agent's text and tool outcomes, runs every side effect
    (compile → store → {project, debit, usage}) and returns the message shape
    the chat UI renders: `normal`, `project`, `pdf` or `templates`, with the
    `normal-with-` prefix when the agent also wrote text.
    """
    log.info(f"[FULFIL] user={user_id} outcomes={len(turn.tool_outcomes)}")
    result = FulfillmentDispatcher(db, store).dispatch(turn, user_id)
    return result.response


@router.post("/guardrail", response_model=GuardrailResponse)
def check_guardrail(request: GuardrailRequest):
    """Security and off-topic screening. Stateless."""
    verdict = classify(request.message)
    return GuardrailResponse(
        passed=verdict.passed,
        block_reason=verdict.block_reason,
        message=verdict.message,
    )
