"""Constrained generation of coaching messages"""
import asyncio
import json
import logging
import re
import time
from typing import Callable, Dict, List, Optional

from focus_coach.config.config import NudgeConfig, config as default_config
from focus_coach.models.focus_state import NudgeRecord, NudgeResult, OnTaskReference
from focus_coach.models.sample import ConfidenceLevel, CurrentMeta, Sample
from focus_coach.services.collaborators import TextGenerator
from focus_coach.services.entity_cache import EntityCache
from focus_coach.services.errors import GenerationError, GenerationTimeoutError
from focus_coach.services.postcheck import (
    FALLBACK_MESSAGE,
    anchored_fallback_message,
    detailed_post_check,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You output exactly ONE sentence in this format:
Your attention score is decreasing, you can try to [ACTION]
[ACTION] ≤ 15 words and, when CONFIDENCE is HIGH or MEDIUM, MUST include at least ONE exact phrase from ENTITIES.
Use concrete doing verbs only: add, cite, define, compute, refactor, write, test, summarize, compare, outline, link, format.
Forbidden verbs/phrases: think about, consider, brainstorm, plan, continue, improve, work on, review, revisit.
Do NOT mention images, screenshots, analysis, user, or document. No explanations. No quotes. No extra text."""

CONTINUATION_SYSTEM_PROMPT = SYSTEM_PROMPT + """
The user drifted away from the task described by LAST_ON_TASK. Suggest the next small step that picks the task back up."""

_WRAPPING_QUOTES = re.compile(r"^[\"']|[\"']$")


def clean_response(raw: Optional[str]) -> str:
    """Trim, strip wrapping quotes and keep only the first line"""
    if raw is None:
        raise GenerationError("AI returned empty response")
    text = str(raw).strip()
    text = _WRAPPING_QUOTES.sub("", text)
    text = text.split("\n", 1)[0].strip()
    if not text:
        raise GenerationError("AI returned empty response")
    return text


class NudgeGenerator:
    """Asks the text generator for a coaching message and enforces the output contract"""

    def __init__(
        self,
        generate_text: TextGenerator,
        nudge_config: Optional[NudgeConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.generate_text = generate_text
        self.config = nudge_config or default_config.nudge
        self.clock = clock or time.time
        self.record = NudgeRecord(
            cooldown_seconds=self.config.cooldown_minutes * 60,
            max_per_session=self.config.max_per_session,
        )
        self.last_result: Optional[NudgeResult] = None

    @property
    def max_attempts(self) -> int:
        return 1 + self.config.max_retries

    def can_generate(self) -> bool:
        """Session cap and cooldown check"""
        return self.record.can_send(self.clock())

    def reset_session(self) -> None:
        self.record.reset()
        logger.info("NudgeGenerator session reset")

    async def generate(
        self,
        work_context: str,
        cache: EntityCache,
        current_meta: Optional[CurrentMeta],
    ) -> Optional[str]:
        """Generate a nudge, or None when throttled"""
        if not self.can_generate():
            logger.info("Nudge generation blocked by cooldown or session limit")
            return None

        match = cache.match_confidence(current_meta)
        sample = match.sample
        logger.info(f"Generating nudge (confidence: {match.confidence.value})")
        if sample is not None:
            logger.debug(f"Using sample: {len(sample.entities)} entities from {sample.app_id}")

        user_prompt = self.build_user_prompt(work_context, match.confidence, sample)
        message = await self._generate_checked(
            SYSTEM_PROMPT, user_prompt, match.entities, match.confidence
        )

        self.record.register(self.clock())
        logger.info(f"Generated nudge: \"{message}\"")
        return message

    async def force_generate(
        self,
        work_context: str,
        cache: EntityCache,
        current_meta: Optional[CurrentMeta],
    ) -> Optional[str]:
        """Generate while ignoring the cooldown and session cap, then restore them"""
        original_cooldown = self.record.cooldown_seconds
        original_cap = self.record.max_per_session
        original_count = self.record.session_count

        self.record.cooldown_seconds = 0
        self.record.max_per_session = max(original_cap, 1)
        self.record.session_count = 0
        try:
            return await self.generate(work_context, cache, current_meta)
        finally:
            self.record.cooldown_seconds = original_cooldown
            self.record.max_per_session = original_cap
            self.record.session_count = original_count

    async def generate_continuation(self, work_context: str, reference: Optional[OnTaskReference]) -> str:
        """Message that points back at the last on-task context

        Not subject to the session cap. The anchoring entities come from the
        reference sample, so confidence is MEDIUM when it has any and LOW
        otherwise.
        """
        sample = reference.sample if reference is not None else None
        entities = list(sample.entities) if sample is not None else []
        confidence = ConfidenceLevel.MEDIUM if entities else ConfidenceLevel.LOW

        user_prompt = self.build_user_prompt(work_context, confidence, sample)
        if reference is not None and reference.reason:
            user_prompt += f"\nLAST_ON_TASK: {reference.reason}"

        return await self._generate_checked(CONTINUATION_SYSTEM_PROMPT, user_prompt, entities, confidence)

    def build_user_prompt(self, work_context: str, confidence: ConfidenceLevel, sample: Optional[Sample]) -> str:
        entities = list(sample.entities) if sample is not None else []
        snippet = (sample.recent_snippet if sample is not None else None) or ""
        return (
            f"Work context: {work_context}\n"
            f"CONFIDENCE: {confidence.value}\n"
            f"ENTITIES: {json.dumps(entities, ensure_ascii=False)}\n"
            f"RECENT_SNIPPET: {snippet}"
        )

    async def _generate_checked(
        self,
        system_prompt: str,
        user_prompt: str,
        entities: List[str],
        confidence: ConfidenceLevel,
    ) -> str:
        """Bounded attempts, each validated; fallback when all fail"""
        message = None
        attempts = 0
        while attempts < self.max_attempts and message is None:
            attempts += 1
            logger.debug(f"Generation attempt {attempts}/{self.max_attempts}")
            try:
                candidate = await self._call_generator(system_prompt, user_prompt)
            except Exception as e:
                logger.warning(f"Generation attempt {attempts} failed: {e}")
                continue

            check = detailed_post_check(candidate, entities, confidence)
            if check.passed:
                message = candidate
            else:
                logger.warning(f"Attempt {attempts} failed validation: {'; '.join(check.issues)}")

        used_fallback = message is None
        if used_fallback:
            logger.info("All attempts failed, using fallback message")
            message = anchored_fallback_message(entities, confidence)

        self.last_result = NudgeResult(
            message=message,
            confidence=confidence.value,
            entities=list(entities),
            attempts=attempts,
            used_fallback=used_fallback,
        )
        return message

    async def _call_generator(self, system_prompt: str, user_prompt: str) -> str:
        timeout = self.config.generation_timeout_seconds
        try:
            raw = await asyncio.wait_for(self.generate_text(system_prompt, user_prompt), timeout=timeout)
        except asyncio.TimeoutError:
            raise GenerationTimeoutError(f"Generation timed out after {timeout}s")
        return clean_response(raw)

    def stats(self) -> Dict:
        """Throttling state for diagnostics"""
        now = self.clock()
        last = self.record.last_nudge_at
        return {
            "session_nudge_count": self.record.session_count,
            "max_nudges_per_session": self.record.max_per_session,
            "can_generate_now": self.can_generate(),
            "minutes_since_last_nudge": round((now - last) / 60) if last is not None else None,
            "cooldown_minutes": self.config.cooldown_minutes,
            "fallback_message": FALLBACK_MESSAGE,
        }
