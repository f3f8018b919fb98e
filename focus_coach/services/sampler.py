"""Lightweight context sampling from the foreground window"""
import logging
import re
import time
from typing import Callable, List, Optional

from focus_coach.config.config import SamplerConfig, config as default_config
from focus_coach.models.sample import (
    MAX_ENTITY_LENGTH,
    MIN_ENTITY_LENGTH,
    Sample,
    SampleTrigger,
    WindowContext,
    normalize_entities,
)
from focus_coach.services.collaborators import ContextSource, as_window_context
from focus_coach.services.scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

ENTITY_PATTERNS = [
    # camelCase identifiers
    re.compile(r"\b[a-z][a-zA-Z0-9]*[A-Z][a-zA-Z0-9]*\b"),
    # snake_case identifiers
    re.compile(r"\b[a-z][a-z0-9]*(?:_[a-z0-9]+)+\b"),
    # call-like identifiers
    re.compile(r"\b[a-zA-Z_][a-zA-Z0-9_]*\("),
    # dotted filenames
    re.compile(r"\b[a-zA-Z0-9_-]+\.[a-zA-Z0-9]{1,4}\b"),
    # runs of capitalized words
    re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b"),
    # domain-like tokens
    re.compile(r"\b[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}\b"),
]

DOCUMENT_PATH_PATTERNS = [
    re.compile(r"([/~][^\s]+\.[a-zA-Z0-9]+)"),
    re.compile(r"([A-Z]:\\[^\s]+\.[a-zA-Z0-9]+)"),
    re.compile(r"([^/\s]+\.[a-zA-Z0-9]+)"),
]

BROWSER_IDS = [
    "com.google.Chrome",
    "com.apple.Safari",
    "org.mozilla.firefox",
    "com.microsoft.edgemac",
    "com.operasoftware.Opera",
]

EDITOR_IDS = [
    "com.microsoft.VSCode",
    "com.apple.dt.Xcode",
    "com.jetbrains",
    "com.sublimetext",
    "com.github.atom",
    "org.vim.MacVim",
]


def extract_from_text(text: Optional[str]) -> List[str]:
    """Apply the entity pattern battery to a piece of text"""
    if not text:
        return []
    found = []
    seen = set()
    for pattern in ENTITY_PATTERNS:
        for match in pattern.findall(text):
            cleaned = match.replace("(", "").replace(")", "").strip()
            if MIN_ENTITY_LENGTH <= len(cleaned) <= MAX_ENTITY_LENGTH and cleaned not in seen:
                seen.add(cleaned)
                found.append(cleaned)
    return found


def derive_document_id(window_title: Optional[str]) -> Optional[str]:
    """Best-effort file path from an editor window title"""
    if not window_title:
        return None
    for pattern in DOCUMENT_PATH_PATTERNS:
        match = pattern.search(window_title)
        if match:
            return match.group(1)
    return None


def is_browser(app_id: Optional[str]) -> bool:
    return bool(app_id) and any(b in app_id for b in BROWSER_IDS)


def is_editor(app_id: Optional[str]) -> bool:
    return bool(app_id) and any(e in app_id for e in EDITOR_IDS)


class ContextSampler:
    """Turns the foreground window context into bounded Samples"""

    def __init__(
        self,
        context_source: ContextSource,
        sampler_config: Optional[SamplerConfig] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Callable[[], float]] = None,
        on_sample: Optional[Callable[[Sample], None]] = None,
    ):
        self.context_source = context_source
        self.config = sampler_config or default_config.sampler
        self.scheduler = scheduler
        self.clock = clock or (scheduler.now if scheduler else time.time)
        self.on_sample = on_sample
        self.is_active = False
        self.last_sample_time: Optional[float] = None
        self._heartbeat: Optional[TimerHandle] = None

    def start(self) -> None:
        """Start sampling and the background heartbeat"""
        self.is_active = True
        self._setup_heartbeat()
        logger.info("ContextSampler started")

    def stop(self) -> None:
        """Stop sampling and cancel the heartbeat"""
        self.is_active = False
        if self._heartbeat is not None and self.scheduler is not None:
            self.scheduler.cancel(self._heartbeat)
        self._heartbeat = None
        logger.info("ContextSampler stopped")

    def _setup_heartbeat(self) -> None:
        if self.scheduler is None:
            return
        if self._heartbeat is not None:
            self.scheduler.cancel(self._heartbeat)
        self._heartbeat = self.scheduler.call_every(
            self.config.heartbeat_minutes * 60,
            self._on_heartbeat,
            name="sampler-heartbeat"
        )

    async def _on_heartbeat(self) -> None:
        if not self.is_active:
            return
        sample = await self.sample_context(SampleTrigger.HEARTBEAT)
        if sample is not None and self.on_sample is not None:
            self.on_sample(sample)

    async def capture(self) -> Optional[WindowContext]:
        """Ask the OS collaborator for the foreground window, None on any failure"""
        try:
            return as_window_context(await self.context_source())
        except Exception as e:
            logger.warning(f"Failed to get app info: {e}")
            return None

    async def sample_context(self, trigger: SampleTrigger = SampleTrigger.MANUAL) -> Optional[Sample]:
        """Capture the current context and build a Sample from it"""
        if not self.is_active:
            return None
        logger.debug(f"Sampling context (trigger: {trigger.value})")
        context = await self.capture()
        if context is None:
            return None
        return self.build_sample(context, trigger)

    def build_sample(self, context: WindowContext, trigger: SampleTrigger = SampleTrigger.MANUAL) -> Optional[Sample]:
        """Build a Sample from an already captured context"""
        try:
            doc_id = context.doc_id
            if not doc_id and is_editor(context.app_id):
                doc_id = derive_document_id(context.window_title)

            snippet = None
            if context.on_screen_text:
                snippet = context.on_screen_text[:self.config.snippet_length]
            elif is_browser(context.app_id) and context.window_title:
                snippet = context.window_title[:self.config.snippet_length]

            sample = Sample(
                timestamp=self._next_timestamp(),
                app_id=context.app_id,
                window_title=context.window_title or None,
                url_domain=context.url_domain,
                doc_id=doc_id,
                entities=self.extract_entities(context, doc_id),
                recent_snippet=snippet,
                trigger=trigger,
            )
        except Exception as e:
            logger.error(f"Context sampling failed: {e}", exc_info=True)
            return None

        self.last_sample_time = sample.timestamp
        logger.info(f"Context sampled: {len(sample.entities)} entities from {sample.app_id} ({trigger.value})")
        return sample

    def extract_entities(self, context: WindowContext, doc_id: Optional[str] = None) -> List[str]:
        """Salient tokens from title, domain, document id and on-screen text"""
        candidates: List[str] = []
        candidates.extend(extract_from_text(context.window_title))
        if context.url_domain:
            candidates.append(context.url_domain)
        candidates.extend(extract_from_text(doc_id or context.doc_id))
        candidates.extend(extract_from_text(context.on_screen_text))
        return normalize_entities(candidates, limit=self.config.max_entities)

    def _next_timestamp(self) -> float:
        now = self.clock()
        if self.last_sample_time is not None and now <= self.last_sample_time:
            now = self.last_sample_time + 1e-6
        return now

    async def on_milestone_event(self, event_type: str) -> Optional[Sample]:
        logger.info(f"Milestone event: {event_type}")
        return await self.sample_context(SampleTrigger.MILESTONE)

    async def on_idle_to_active(self) -> Optional[Sample]:
        logger.info("Idle to active transition")
        return await self.sample_context(SampleTrigger.IDLE_TO_ACTIVE)

