"""Output contract checks for coaching messages"""
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

from focus_coach.models.sample import ConfidenceLevel, MIN_ENTITY_LENGTH

logger = logging.getLogger(__name__)

PREFIX = "Your attention score is decreasing, you can try to "
MAX_ACTION_WORDS = 15

FORBIDDEN_PHRASES = [
    "think about", "consider", "brainstorm", "plan", "continue",
    "improve", "work on", "review", "revisit",
]
FORBIDDEN = re.compile(
    r"\b(" + "|".join(re.escape(p) for p in FORBIDDEN_PHRASES) + r")\b",
    re.IGNORECASE
)

ACTION_VERBS = [
    "add", "cite", "define", "compute", "refactor", "write", "test",
    "summarize", "compare", "outline", "link", "format", "create",
    "update", "fix", "implement", "document", "analyze", "optimize",
]

FALLBACK_MESSAGE = PREFIX + "re-read the last line and add one detail."

Confidence = Union[ConfidenceLevel, str]


@dataclass
class PostCheckResult:
    """Itemized validation outcome"""
    issues: List[str] = field(default_factory=list)
    advisories: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.issues


def action_clause(output: str) -> str:
    """Text after the fixed prefix"""
    return output[len(PREFIX):].strip()


def _requires_entity(entities: Optional[Iterable[str]], confidence: Confidence) -> List[str]:
    """Entities the output must draw from, or an empty list when the rule is skipped"""
    if confidence == ConfidenceLevel.LOW or not entities:
        return []
    return [e for e in entities if isinstance(e, str) and len(e) >= MIN_ENTITY_LENGTH]


def _contains_entity(output: str, entities: List[str]) -> bool:
    lowered = output.lower()
    return any(entity.lower() in lowered for entity in entities)


def detailed_post_check(output, entities: Optional[Iterable[str]], confidence: Confidence) -> PostCheckResult:
    """Validate a candidate message and report every violated rule"""
    result = PostCheckResult()

    if not output or not isinstance(output, str):
        result.issues.append("Invalid output type")
        return result

    if not output.startswith(PREFIX):
        result.issues.append("Missing required prefix")
        tail = ""
    else:
        tail = action_clause(output)
        if not tail:
            result.issues.append("Empty action part")

    words = tail.split()
    if len(words) > MAX_ACTION_WORDS:
        result.issues.append(f"Too many words ({len(words)} > {MAX_ACTION_WORDS})")

    if FORBIDDEN.search(output):
        result.issues.append("Contains forbidden phrases")

    required = _requires_entity(entities, confidence)
    if required and not _contains_entity(output, required):
        label = confidence.value if isinstance(confidence, ConfidenceLevel) else confidence
        result.issues.append(f"No entity found (confidence: {label})")

    if not has_concrete_verbs(output):
        result.advisories.append("No concrete action verbs found")

    return result


def post_check(output, entities: Optional[Iterable[str]], confidence: Confidence) -> bool:
    """True when the output satisfies the whole contract"""
    result = detailed_post_check(output, entities, confidence)
    if not result.passed:
        logger.debug(f"PostCheck failed: {'; '.join(result.issues)}")
        return False
    logger.debug(f"PostCheck passed (confidence: {confidence})")
    return True


def extract_action_verbs(text: str) -> List[str]:
    """Whitelisted action verbs present in text"""
    if not text:
        return []
    words = set(re.findall(r"[a-z]+", text.lower()))
    return [verb for verb in ACTION_VERBS if verb in words]


def has_concrete_verbs(output: str) -> bool:
    return bool(extract_action_verbs(output))


def get_fallback_message() -> str:
    return FALLBACK_MESSAGE


def anchored_fallback_message(entities: Optional[Iterable[str]], confidence: Confidence) -> str:
    """Fallback that still names an entity when the confidence tier demands one"""
    for entity in _requires_entity(entities, confidence):
        candidate = f"{PREFIX}add one detail to {entity}"
        if post_check(candidate, [entity], confidence):
            return candidate
    return FALLBACK_MESSAGE
