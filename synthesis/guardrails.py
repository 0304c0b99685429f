"""
Input guardrails — a stateless verdict on one user message before it reaches the agent.

Security patterns (credential extraction, prompt injection, jailbreaks) always block.
Off-topic patterns block only when the message is long enough to judge and carries
no educational keyword.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

log = logging.getLogger(__name__)

MIN_OFF_TOPIC_LENGTH = 15

SECURITY_MESSAGE = (
    "I'm an educational assistant for ZIMSEC projects. I cannot share system "
    "information or credentials, or change my purpose. How can I help with your "
    "ZIMSEC project today?"
)

OFF_TOPIC_MESSAGE = (
    "I'm your ZIMSEC educational assistant! I can help with School-Based Projects, "
    "assignments and questions about your O Level and A Level studies. Could you ask "
    "me something related to your schoolwork?"
)


SECURITY_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"api[\s\-_]*keys?\b",
    r"\bsecret[\s\-_]*(key|token)s?\b",
    r"\b(what|tell|give|share|show|reveal|send|print|list|leak|dump)\b(\s+(me|us|is|are|was|all|of))*"
    r"\s+((your|the|admin|system|server|database|root)\s+){0,2}(passwords?|credentials?|logins?)\b",
    r"\b(access|auth|bearer)[\s\-_]*tokens?\b",
    r"system[\s\-_]*prompt",
    r"ignore[\s\-_]*(all[\s\-_]*)?(previous|above|prior)[\s\-_]*(instructions|prompts?|messages?)?",
    r"forget[\s\-]*(everything|all|previous)",
    r"\byou[\s\-_]*are[\s\-_]*now\b",
    r"\bnew[\s\-_]*role\b",
    r"\bpretend[\s\-_]*(to[\s\-_]*be|you)\b",
    r"\bDAN\b",
    r"jailbreak",
    r"\b(override|bypass)[\s\-_]*(your|the|all|safety)",
    r"reveal[\s\-_]*(your|the)[\s\-_]*(prompt|instructions|system)",
    r"show[\s\-_]*(me[\s\-_]*)?(your|the)[\s\-_]*(prompt|instructions|system)",
    r"what[\s\-_]*(are|is)[\s\-_]*your[\s\-_]*(instructions|prompts?|system)",
)]

OFF_TOPIC_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"\b(movie|film|netflix|youtube|tiktok|instagram|facebook|twitter|snapchat|celebrity|music video|concert|gaming|video game|fortnite|minecraft)\b",
    r"\b(dating|relationship advice|girlfriend|boyfriend|crush|love life|break ?up)\b",
    r"\b(adult|explicit|nsfw|porn|sex)\b",
    r"\b(weapon|gun|bomb|kill|murder|suicide|self[- ]?harm)\b",
    r"\b(drugs|marijuana|cocaine|illegal substance|how to hack)\b",
    r"\b(betting|gamble|casino|lottery)\b",
    r"\b(vote for|political party|election campaign|propaganda)\b",
    r"\b(buy now|free money|get rich quick|mlm|pyramid scheme|crypto investment)\b",
    r"\b(recipe|cooking tips|fashion advice|celebrity gossip|sports betting|horoscope)\b",
)]

EDUCATIONAL_KEYWORDS = (
    # ZIMSEC
    "zimsec", "sba", "sbp", "school-based", "o level", "o-level", "ordinary level",
    "a level", "a-level", "advanced level", "form 4", "form 5", "form 6",
    "upper 6", "lower 6",
    # Subjects
    "biology", "chemistry", "physics", "mathematics", "maths", "english", "shona",
    "ndebele", "geography", "history", "heritage studies", "computer science", "ict",
    "information technology", "agriculture", "commerce", "accounting", "economics",
    "business studies", "food science", "fashion and fabrics", "technical graphics",
    # Coursework
    "project", "assignment", "homework", "essay", "research", "experiment",
    "hypothesis", "methodology", "conclusion", "bibliography", "investigation",
    "evaluation", "analysis", "report", "presentation", "exam", "syllabus",
    "curriculum", "school", "teacher", "student", "learner", "template",
)

_KEYWORD_RE = re.compile(
    r"\b(" + "|".join(re.escape(k) for k in EDUCATIONAL_KEYWORDS) + r")\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class GuardrailVerdict:
    passed: bool
    block_reason: Optional[str] = None   # "security" | "off_topic"
    message: Optional[str] = None


def has_educational_content(text: str) -> bool:
    return bool(_KEYWORD_RE.search(text or ""))


def classify(text: Optional[str]) -> GuardrailVerdict:
    """Pure predicate over one message."""
    content = (text or "").strip()

    if any(p.search(content) for p in SECURITY_PATTERNS):
        log.info("[GUARDRAIL] Blocked message: security pattern")
        return GuardrailVerdict(passed=False, block_reason="security", message=SECURITY_MESSAGE)

    if len(content) < MIN_OFF_TOPIC_LENGTH:
        return GuardrailVerdict(passed=True)

    if any(p.search(content) for p in OFF_TOPIC_PATTERNS) and not has_educational_content(content):
        log.info("[GUARDRAIL] Blocked message: off-topic")
        return GuardrailVerdict(passed=False, block_reason="off_topic", message=OFF_TOPIC_MESSAGE)

    return GuardrailVerdict(passed=True)
