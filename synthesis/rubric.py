"""
Rubric Schema — marking-guide structure, mark weights and validation.

- Six fixed stages, each a fixed set of fields with a mark weight and a depth hint
- Full validation on first generation (all six stages required)
- Per-stage merge-patch validation on edit (absent stages pass through unchanged)

Depth hints are guidance for content writers; nothing here measures sentences.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from synthesis.errors import RubricValidationError
from synthesis.schemas import RubricDocument, STAGE_MODELS


STAGE_KEYS = tuple(STAGE_MODELS.keys())


# ─── Marking guide ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FieldGuide:
    name: str                  # wire (camelCase) field name
    label: str
    marks: int
    depth: str
    min_items: Optional[int] = None
    exact_items: Optional[int] = None


@dataclass(frozen=True)
class StageGuide:
    key: str
    number: int
    title: str
    marks: int
    fields: Tuple[FieldGuide, ...] = field(default_factory=tuple)

    @property
    def field_marks(self) -> int:
        return sum(f.marks for f in self.fields)


RUBRIC_GUIDE: Tuple[StageGuide, ...] = (
    StageGuide("stage1", 1, "Problem Identification", 5, (
        FieldGuide("problemDescription", "Description of Problem/Innovation/Identified Gap", 1, "1-2 sentences"),
        FieldGuide("statementOfIntent", "Statement of Intent", 2, "3-5 sentences"),
        FieldGuide("specifications", "Design/Project Specifications", 2, "specific, measurable items", min_items=2),
    )),
    StageGuide("stage2", 2, "Investigation of Related Ideas", 10, (
        FieldGuide("relatedIdeas", "Related Ideas", 9, "3 ideas x (description, merits, demerits)", exact_items=3),
        FieldGuide("presentation", "Presentation", 1, "clear layout of the three ideas"),
    )),
    StageGuide("stage3", 3, "Generation of Possible Solutions", 9, (
        FieldGuide("possibleSolutions", "Possible Solutions", 9, "3 original solutions x (description, merits, demerits)", exact_items=3),
    )),
    StageGuide("stage4", 4, "Development/Refinement of Chosen Idea", 10, (
        FieldGuide("chosenSolution", "Chosen Solution", 1, "1 sentence"),
        FieldGuide("justification", "Justification of Choice", 2, "2-3 sentences per point", min_items=2),
        FieldGuide("refinements", "Developments/Refinements", 6, "4-6 sentences each", exact_items=3),
        FieldGuide("presentation", "Presentation", 1, "clear development narrative"),
    )),
    StageGuide("stage5", 5, "Presentation of Results/Final Solution", 10, (
        FieldGuide("presentationType", "Presentation Type", 1, "artifact | service | product"),
        FieldGuide("description", "Final Solution", 3, "4-6 sentences"),
        FieldGuide("features", "Key Features", 3, "4-5 specific features", min_items=4),
        FieldGuide("implementation", "Implementation", 3, "4-6 sentences"),
    )),
    StageGuide("stage6", 6, "Evaluation and Recommendations", 5, (
        FieldGuide("relevanceToIntent", "Relevance to Statement of Intent", 2, "3-5 sentences"),
        FieldGuide("challenges", "Challenges Encountered", 1, "2-3 challenges", min_items=2),
        FieldGuide("recommendations", "Recommendations", 2, "2-3 suggestions", min_items=2),
    )),
)

STAGE_GUIDES: Dict[str, StageGuide] = {g.key: g for g in RUBRIC_GUIDE}


def rubric_total_marks() -> int:
    return sum(g.marks for g in RUBRIC_GUIDE)


# ─── Validation ────────────────────────────────────────────────────────────────

def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


def _issues(exc: ValidationError, prefix: str = "") -> List[Dict[str, Any]]:
    issues = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        if prefix:
            loc = f"{prefix}.{loc}" if loc else prefix
        issues.append({"loc": loc, "msg": err.get("msg", "invalid")})
    return issues


def _summary(issues: List[Dict[str, Any]]) -> str:
    head = "; ".join(f"{i['loc']}: {i['msg']}" for i in issues[:3])
    more = f" (+{len(issues) - 3} more)" if len(issues) > 3 else ""
    return f"Rubric validation failed: {head}{more}"


def validate_rubric(candidate: Union[RubricDocument, Mapping[str, Any]]) -> RubricDocument:
    """
    Validate a full six-stage rubric.

    Args:
        candidate: mapping with stage1..stage6 (camelCase or snake_case keys),
                   or an already-built RubricDocument

    Returns:
        RubricDocument

    Raises:
        RubricValidationError: a stage is missing or breaks a cardinality rule
    """
    if isinstance(candidate, RubricDocument):
        return candidate
    if not isinstance(candidate, Mapping):
        raise RubricValidationError(
            "Rubric validation failed: content must be an object",
            [{"loc": "", "msg": "expected an object with stage1..stage6"}],
        )
    stages = {k: candidate.get(k) for k in STAGE_KEYS}
    try:
        return RubricDocument.model_validate(stages)
    except ValidationError as e:
        issues = _issues(e)
        raise RubricValidationError(_summary(issues), issues) from e


def extract_stage_patch(payload: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Pick the stage objects an edit actually supplies (None / non-objects are ignored)."""
    return {
        key: dict(payload[key])
        for key in STAGE_KEYS
        if isinstance(payload.get(key), Mapping)
    }


def validate_patch(prior: RubricDocument, patch: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate only the stages an edit patch supplies.

    Each supplied stage is merged over its prior values and checked with the same
    cardinality rules as a full rubric. Absent stages are not looked at.

    Returns:
        {stage key: validated stage model} for the patched stages

    Raises:
        RubricValidationError: a patched stage is invalid after merging
    """
    validated = {}
    issues: List[Dict[str, Any]] = []
    for key, fields in extract_stage_patch(patch).items():
        merged = getattr(prior, key).model_dump(by_alias=True)
        merged.update({_camel(k): v for k, v in fields.items() if v is not None})
        try:
            validated[key] = STAGE_MODELS[key].model_validate(merged)
        except ValidationError as e:
            issues.extend(_issues(e, prefix=key))

    if issues:
        raise RubricValidationError(_summary(issues), issues)
    return validated


def merge_rubric(prior: RubricDocument, patch: Mapping[str, Any]) -> RubricDocument:
    """
    Apply merge-patch semantics to a rubric.

    Patched stages replace the prior ones once validate_patch accepts them; stages
    absent from the patch are carried over untouched.

    Raises:
        RubricValidationError: a patched stage is invalid after merging
    """
    updates = validate_patch(prior, patch)
    if not updates:
        return prior
    return prior.model_copy(update=updates)


def rubric_to_json(rubric: RubricDocument) -> Dict[str, Any]:
    """Serialise for the projects.content column (camelCase, same shape the agent sends)."""
    return rubric.model_dump(by_alias=True, mode="json")
