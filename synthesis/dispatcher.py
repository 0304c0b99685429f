"""
Fulfillment Dispatcher — agent tool outcomes → idempotent, atomic side effects.

Per tool outcome, in agent order:

  generateProject    credit check → validate → resolve template → compile → store
                     → txn{insert project, debit 1, usage +1, record}
  editProject        load owned project → merge-patch → recompile → store
                     → txn{update project, debit 1, usage +1 if template changed, record}
  regenerateProject  load owned project → resolve new template → recompile → store
                     → txn{update pointer + template, debit 1, usage +1, record}
  showTemplates      templates flag only
  generatePDF        compile free-form document → store (no ledger effect)
  anything else      skipped

A failing outcome rolls back its own transaction and is reported as failed; the
remaining outcomes still run. The artifact is always stored before any ledger
effect, so a store failure can never cost a credit.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import crud
from database.models import Project
from synthesis.artifact_store import ArtifactStore, StoredArtifact
from synthesis.compiler import CompileResult, compile_document, compile_project
from synthesis.errors import (
    CompileError,
    FulfillmentError,
    InsufficientCreditsError,
    InvalidArgumentsError,
    ProjectNotFoundError,
)
from synthesis.ledger import CREDITS_PER_FULFILLMENT, CreditLedger
from synthesis.response_builder import build_response, format_file_size, mentions_template_selection
from synthesis.rubric import merge_rubric, rubric_to_json, validate_rubric
from synthesis.schemas import (
    ChatTurn,
    ChatTurnResponse,
    EditProjectArgs,
    FileAttachment,
    GeneratePdfArgs,
    GenerateProjectArgs,
    ProjectMetadata,
    RegenerateProjectArgs,
    ToolOutcome,
)
from synthesis.templates import TemplateCatalog, list_template_cards, resolve_template
from synthesis.usage_tracker import collect_used_template_ids

log = logging.getLogger("synthesis.pipeline")


# ─── Tool classification ───────────────────────────────────────────────────────

class ToolKind(str, Enum):
    GENERATE_PROJECT = "generateProject"
    EDIT_PROJECT = "editProject"
    REGENERATE_PROJECT = "regenerateProject"
    SHOW_TEMPLATES = "showTemplates"
    GENERATE_PDF = "generatePDF"
    UNKNOWN = "unknown"


CREDIT_BEARING = frozenset({
    ToolKind.GENERATE_PROJECT,
    ToolKind.EDIT_PROJECT,
    ToolKind.REGENERATE_PROJECT,
})

_TOOL_NAMES = {
    "generateproject": ToolKind.GENERATE_PROJECT,
    "editproject": ToolKind.EDIT_PROJECT,
    "regenerateproject": ToolKind.REGENERATE_PROJECT,
    "showtemplates": ToolKind.SHOW_TEMPLATES,
    "generatepdf": ToolKind.GENERATE_PDF,
}


def classify_outcome(tool_name: Optional[str]) -> ToolKind:
    """Map an agent tool id ("generate-project", "editProject", ...) to its kind."""
    key = (tool_name or "").lower().replace("-", "").replace("_", "")
    return _TOOL_NAMES.get(key, ToolKind.UNKNOWN)


# ─── Events ────────────────────────────────────────────────────────────────────

class OutcomeStatus(str, Enum):
    PENDING = "pending"
    SKIPPED = "skipped"
    FULFILLED = "fulfilled"
    FAILED = "failed"


@dataclass
class FulfillmentEvent:
    kind: ToolKind
    tool_name: Optional[str]
    tool_call_id: Optional[str] = None
    status: OutcomeStatus = OutcomeStatus.PENDING
    error: Optional[str] = None
    project_id: Optional[str] = None
    template_id: Optional[str] = None
    attachment: Optional[FileAttachment] = None
    debited: bool = False
    replayed: bool = False

    @property
    def fulfilled(self) -> bool:
        return self.status == OutcomeStatus.FULFILLED

    @property
    def failed(self) -> bool:
        return self.status == OutcomeStatus.FAILED


@dataclass
class DispatchResult:
    response: ChatTurnResponse
    events: List[FulfillmentEvent] = field(default_factory=list)

    @property
    def credits_debited(self) -> int:
        return sum(CREDITS_PER_FULFILLMENT for e in self.events if e.debited)

    @property
    def template_ids(self) -> List[str]:
        return collect_used_template_ids(self.events)


def _parse(model: Type[BaseModel], args: Dict[str, Any]) -> Any:
    try:
        return model.model_validate(args or {})
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "args" for err in e.errors())
        raise InvalidArgumentsError(f"Invalid {model.__name__}: {fields}") from e


def project_attachment(project: Project) -> FileAttachment:
    return FileAttachment(
        url=project.download_url,
        name=project.file_name,
        size=format_file_size(project.file_size),
        id=project.id,
        title=project.title,
    )


def project_metadata(project: Project) -> ProjectMetadata:
    return ProjectMetadata(
        title=project.title,
        subject=project.subject,
        author=project.author,
        level=project.level,
        school=project.school,
        candidate_number=project.candidate_number,
        form_grade=project.form_grade,
        description=project.description,
    )


# ─── Dispatcher ────────────────────────────────────────────────────────────────

EDITABLE_METADATA = (
    "title", "subject", "author", "level", "school",
    "candidate_number", "form_grade", "description",
)


class FulfillmentDispatcher:
    """
    Fulfils one chat turn for one user.

    The session's transaction is owned here: each credit-bearing outcome commits
    {project, debit, usage, record} together or rolls all of it back.
    """

    def __init__(self, db: Session, store: ArtifactStore,
                 ledger: Optional[CreditLedger] = None,
                 catalog: Optional[TemplateCatalog] = None):
        self.db = db
        self.store = store
        self.ledger = ledger or CreditLedger(db)
        self.catalog = catalog or TemplateCatalog(db)
        self._handlers: Dict[ToolKind, Callable[[ToolOutcome, str, FulfillmentEvent], None]] = {
            ToolKind.GENERATE_PROJECT: self._generate_project,
            ToolKind.EDIT_PROJECT: self._edit_project,
            ToolKind.REGENERATE_PROJECT: self._regenerate_project,
            ToolKind.SHOW_TEMPLATES: self._show_templates,
            ToolKind.GENERATE_PDF: self._generate_pdf,
        }

    def dispatch(self, turn: ChatTurn, user_id: str) -> DispatchResult:
        start = time.time()
        events = [self._fulfil(outcome, user_id) for outcome in turn.tool_outcomes]

        project = next((e.attachment for e in reversed(events)
                        if e.kind in CREDIT_BEARING and e.attachment is not None), None)
        pdf = next((e.attachment for e in reversed(events)
                    if e.kind == ToolKind.GENERATE_PDF and e.attachment is not None), None)

        wants_templates = any(e.kind == ToolKind.SHOW_TEMPLATES and e.fulfilled for e in events) \
            or mentions_template_selection(turn.response_text)
        templates = None
        if wants_templates and project is None and pdf is None:
            templates = list_template_cards(self.catalog, user_id)

        response = build_response(turn.response_text, project=project, pdf=pdf, templates=templates)
        summary = ", ".join(f"{e.kind.value}={e.status.value}" for e in events) or "no tools"
        log.info(
            f"[DISPATCH] user={user_id} {summary} → {response.message_type} "
            f"({time.time() - start:.2f}s)"
        )
        return DispatchResult(response=response, events=events)

    # ─── Per-outcome state machine ─────────────────────────────────────────────

    def _fulfil(self, outcome: ToolOutcome, user_id: str) -> FulfillmentEvent:
        kind = classify_outcome(outcome.tool_name)
        event = FulfillmentEvent(kind=kind, tool_name=outcome.tool_name, tool_call_id=outcome.tool_call_id)

        if kind == ToolKind.UNKNOWN or not outcome.success:
            event.status = OutcomeStatus.SKIPPED
            return event

        try:
            if kind in CREDIT_BEARING and outcome.tool_call_id and self._replay(outcome, user_id, event):
                return event
            self._handlers[kind](outcome, user_id, event)
            event.status = OutcomeStatus.FULFILLED
        except (FulfillmentError, SQLAlchemyError, OSError) as e:
            self.db.rollback()
            event.status = OutcomeStatus.FAILED
            event.error = str(e)
            event.debited = False
            event.attachment = None
            log.warning(f"[{kind.value.upper()}] Failed for user={user_id}: {e}")
        return event

    def _replay(self, outcome: ToolOutcome, user_id: str, event: FulfillmentEvent) -> bool:
        record = crud.get_fulfillment_record(self.db, outcome.tool_call_id)
        if record is None:
            return False
        event.status = OutcomeStatus.SKIPPED
        event.replayed = True
        event.project_id = record.project_id
        if record.user_id == user_id and record.project_id:
            project = crud.get_project_for_user(self.db, record.project_id, user_id)
            if project is not None:
                event.attachment = project_attachment(project)
        log.info(f"[REPLAY] toolCallId={outcome.tool_call_id} already fulfilled, not charging again")
        return True

    # ─── Shared steps ──────────────────────────────────────────────────────────

    def _require_credit(self, user_id: str) -> None:
        if not self.ledger.can_afford(user_id):
            raise InsufficientCreditsError(f"User '{user_id}' has no credits left")

    def _owned_project(self, project_id: str, user_id: str) -> Project:
        project = crud.get_project_for_user(self.db, project_id, user_id)
        if project is None:
            raise ProjectNotFoundError(f"Project '{project_id}' not found")
        return project

    def _store(self, compiled: CompileResult) -> StoredArtifact:
        if not compiled.success:
            raise CompileError(compiled.error or "Compilation failed")
        return self.store.store(compiled.pdf_bytes, compiled.file_name)

    def _commit_charge(self, outcome: ToolOutcome, user_id: str, project: Project,
                       stored: StoredArtifact, event: FulfillmentEvent,
                       usage_template_id: Optional[str]) -> None:
        """Debit, usage bump and idempotency record in the same transaction as the project write."""
        self.ledger.debit(user_id, CREDITS_PER_FULFILLMENT)
        if usage_template_id:
            self.catalog.increment_usage(usage_template_id)
        if outcome.tool_call_id:
            crud.add_fulfillment_record(
                self.db,
                tool_call_id=outcome.tool_call_id,
                tool_name=event.kind.value,
                user_id=user_id,
                project_id=project.id,
                file_name=stored.file_name,
            )
        self.db.commit()
        self.db.refresh(project)

        event.debited = True
        event.project_id = project.id
        event.attachment = project_attachment(project)

    # ─── Handlers ──────────────────────────────────────────────────────────────

    def _generate_project(self, outcome: ToolOutcome, user_id: str, event: FulfillmentEvent) -> None:
        args = _parse(GenerateProjectArgs, outcome.args)
        self._require_credit(user_id)

        rubric = validate_rubric(outcome.args)
        resolved = resolve_template(args.template_id, self.catalog, user_id)
        metadata = args.metadata()

        stored = self._store(compile_project(rubric, resolved.style, metadata))
        event.template_id = resolved.template_id

        project = crud.add_project(
            self.db,
            user_id=user_id,
            title=metadata.title,
            content=rubric_to_json(rubric),
            file_name=stored.file_name,
            download_url=stored.download_url,
            file_size=stored.size,
            template_id=resolved.template_id,
            subject=metadata.subject,
            level=metadata.level,
            author=metadata.author,
            school=metadata.school,
            candidate_number=metadata.candidate_number,
            form_grade=metadata.form_grade,
            description=metadata.description,
        )
        self._commit_charge(outcome, user_id, project, stored, event, resolved.template_id)
        log.info(f"[GENERATE] '{metadata.title}' → {stored.file_name} (template={resolved.template_id})")

    def _edit_project(self, outcome: ToolOutcome, user_id: str, event: FulfillmentEvent) -> None:
        args = _parse(EditProjectArgs, outcome.args)
        project = self._owned_project(args.project_id, user_id)
        self._require_credit(user_id)

        rubric = merge_rubric(validate_rubric(project.content), outcome.args)

        for name in EDITABLE_METADATA:
            value = getattr(args, name)
            if value:
                setattr(project, name, value)
        metadata = project_metadata(project)

        resolved = resolve_template(args.template_id or project.template_id, self.catalog, user_id)
        template_changed = bool(args.template_id) and resolved.template_id != project.template_id

        stored = self._store(compile_project(rubric, resolved.style, metadata))
        event.template_id = resolved.template_id

        project.content = rubric_to_json(rubric)
        project.file_name = stored.file_name
        project.download_url = stored.download_url
        project.file_size = stored.size
        project.template_id = resolved.template_id
        self._commit_charge(outcome, user_id, project, stored, event,
                            resolved.template_id if template_changed else None)

        reason = f" ({args.edit_reason})" if args.edit_reason else ""
        log.info(f"[EDIT] {project.id} → {stored.file_name}{reason}")

    def _regenerate_project(self, outcome: ToolOutcome, user_id: str, event: FulfillmentEvent) -> None:
        args = _parse(RegenerateProjectArgs, outcome.args)
        project = self._owned_project(args.project_id, user_id)
        self._require_credit(user_id)

        rubric = validate_rubric(project.content)
        resolved = resolve_template(args.template_id, self.catalog, user_id)

        stored = self._store(compile_project(rubric, resolved.style, project_metadata(project)))
        event.template_id = resolved.template_id

        project.file_name = stored.file_name
        project.download_url = stored.download_url
        project.file_size = stored.size
        project.template_id = resolved.template_id
        self._commit_charge(outcome, user_id, project, stored, event, resolved.template_id)
        log.info(f"[REGENERATE] {project.id} with {resolved.template_id} → {stored.file_name}")

    def _show_templates(self, outcome: ToolOutcome, user_id: str, event: FulfillmentEvent) -> None:
        # Nothing to persist; dispatch() attaches the catalog
        pass

    def _generate_pdf(self, outcome: ToolOutcome, user_id: str, event: FulfillmentEvent) -> None:
        args = _parse(GeneratePdfArgs, outcome.args)
        resolved = resolve_template(None)
        metadata = ProjectMetadata(title=args.title, author=args.author, subject=args.subject)

        stored = self._store(compile_document(args.title, args.content, args.sections, resolved.style, metadata))
        event.attachment = FileAttachment(
            url=stored.download_url,
            name=stored.file_name,
            size=format_file_size(stored.size),
        )
        log.info(f"[PDF] '{args.title}' → {stored.file_name}")
