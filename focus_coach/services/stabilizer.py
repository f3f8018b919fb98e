"""Focus state stabilization, escalation, idle detection and reminders

The stabilizer turns noisy per-screenshot classifications into one
externally visible ``FocusState``. It owns every timer it uses; all of them
are registered on the injected scheduler and cleared by ``stop``.

Idle and semi-distraction escalation suppress each other: entering Idle
cancels the escalation timer, and classifications arriving while Idle are
recorded and surfaced without changing state. Only input activity leaves
Idle, always into Focused.
"""
import asyncio
import inspect
import logging
from collections import deque
from typing import Any, Callable, Deque, List, Optional

from focus_coach.config.config import StabilizerConfig, config as default_config
from focus_coach.models.focus_state import (
    ClassificationEvent,
    ClassificationResult,
    FocusLabel,
    FocusState,
    NudgeEvent,
    NudgeKind,
    OnTaskReference,
    ScreenArtifact,
    StateTransition,
)
from focus_coach.models.sample import CurrentMeta, Sample, SampleTrigger, WindowContext
from focus_coach.services.collaborators import (
    ArtifactCapturer,
    ContextSource,
    FocusClassifier,
    IdleTimeReader,
    Redactor,
    as_classification_result,
    as_redaction_outcome,
)
from focus_coach.services.entity_cache import EntityCache
from focus_coach.services.nudge import NudgeGenerator
from focus_coach.services.postcheck import get_fallback_message
from focus_coach.services.sampler import ContextSampler
from focus_coach.services.scheduler import AsyncioScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)

REMINDER_STATES = (FocusState.DISTRACTED, FocusState.IDLE)
ON_TASK_STATES = (FocusState.FOCUSED, FocusState.SEMI_DISTRACTED)


class FocusStabilizer:
    """Debounced focus state machine driven by window polling and idle checks"""

    def __init__(
        self,
        *,
        context_source: ContextSource,
        classifier: FocusClassifier,
        scheduler: Optional[Scheduler] = None,
        stabilizer_config: Optional[StabilizerConfig] = None,
        capture_artifact: Optional[ArtifactCapturer] = None,
        redactor: Optional[Redactor] = None,
        idle_reader: Optional[IdleTimeReader] = None,
        sampler: Optional[ContextSampler] = None,
        cache: Optional[EntityCache] = None,
        nudge_generator: Optional[NudgeGenerator] = None,
        on_state_change: Optional[Callable[[StateTransition], Any]] = None,
        on_classification: Optional[Callable[[ClassificationEvent], Any]] = None,
        on_nudge: Optional[Callable[[NudgeEvent], Any]] = None,
    ):
        self.config = stabilizer_config or default_config.stabilizer
        self.scheduler = scheduler or AsyncioScheduler()
        self.classifier = classifier
        self.capture_artifact = capture_artifact
        self.redactor = redactor
        self.idle_reader = idle_reader
        self.cache = cache or EntityCache(clock=self.scheduler.now)
        self.sampler = sampler or ContextSampler(context_source, scheduler=self.scheduler)
        self.sampler.on_sample = self._on_background_sample
        self.nudge_generator = nudge_generator

        self.on_state_change = on_state_change
        self.on_classification = on_classification
        self.on_nudge = on_nudge

        self.state: Optional[FocusState] = None
        self.work_context: Optional[str] = None
        self.transitions: List[StateTransition] = []
        self.history: Deque[FocusLabel] = deque(maxlen=self.config.history_size)
        self.last_label: Optional[FocusLabel] = None
        self.last_reason: str = ""
        self.on_task_reference: Optional[OnTaskReference] = None
        self.current_context: Optional[WindowContext] = None

        self._running = False
        self._last_window_identity: Optional[str] = None
        self._last_window_change_at: float = 0.0
        self._last_analysis_at: Optional[float] = None
        self._analysis_in_flight = False
        self._analysis_pending = False
        self._escalated = False
        self._reminder_in_flight = False

        self._poll_timer: Optional[TimerHandle] = None
        self._idle_timer: Optional[TimerHandle] = None
        self._escalation_timer: Optional[TimerHandle] = None
        self._reminder_timer: Optional[TimerHandle] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def consensus(self) -> int:
        """Occurrences of the last accepted label in the rolling history"""
        if self.last_label is None:
            return 0
        return sum(1 for label in self.history if label == self.last_label)

    def start(self, work_context: str) -> None:
        """Begin monitoring for the given work context"""
        if self._running:
            logger.warning("Focus monitoring already running")
            return
        if not work_context or not work_context.strip():
            raise ValueError("Work context must not be empty")

        self.work_context = work_context.strip()
        self.scheduler.reopen()
        self._reset_session()
        self._running = True
        self._last_window_change_at = self.scheduler.now()

        self.sampler.start()
        self._transition(FocusState.DETECTING, "monitoring started")

        self._poll_timer = self.scheduler.call_every(
            self.config.poll_interval_seconds, self._poll_window, name="window-poll"
        )
        self._idle_timer = self.scheduler.call_every(
            self.config.idle_check_interval_seconds, self._check_idle, name="idle-check"
        )
        self.scheduler.spawn(self._poll_window(), name="initial-poll")
        logger.info(f"Focus monitoring started: {self.work_context}")

    def stop(self) -> None:
        """Stop monitoring; no timer fires afterwards"""
        if not self._running:
            return
        self._running = False
        for handle in (self._poll_timer, self._idle_timer, self._escalation_timer, self._reminder_timer):
            self.scheduler.cancel(handle)
        self._poll_timer = self._idle_timer = self._escalation_timer = self._reminder_timer = None
        self.sampler.stop()
        self.scheduler.cancel_all()

        self._analysis_in_flight = False
        self._analysis_pending = False
        self._reminder_in_flight = False
        self._escalated = False
        self.state = None
        logger.info("Focus monitoring stopped")

    def _reset_session(self) -> None:
        self.transitions = []
        self.history.clear()
        self.last_label = None
        self.last_reason = ""
        self.on_task_reference = None
        self.current_context = None
        self._last_window_identity = None
        self._last_analysis_at = None
        self._escalated = False
        if self.nudge_generator is not None:
            self.nudge_generator.reset_session()

    # Window polling and classification

    async def _poll_window(self) -> None:
        if not self._running:
            return
        context = await self.sampler.capture()
        if context is None or not self._running:
            return

        self.current_context = context
        identity = context.identity
        if identity != self._last_window_identity:
            previous = self._last_window_identity
            self._last_window_identity = identity
            self._last_window_change_at = self.scheduler.now()
            logger.info(f"Window changed: {previous} -> {identity}")
            self._request_analysis("window change")
        elif self._analysis_pending:
            self._request_analysis("deferred window change")

    def _request_analysis(self, reason: str) -> bool:
        """Issue a classification unless one is in flight or the cooldown is open"""
        if not self._running:
            return False
        now = self.scheduler.now()
        if self._analysis_in_flight:
            logger.debug(f"Analysis already in flight, deferring ({reason})")
            self._analysis_pending = True
            return False
        if self._last_analysis_at is not None and now - self._last_analysis_at < self.config.analysis_cooldown_seconds:
            logger.debug(f"Analysis cooldown open, deferring ({reason})")
            self._analysis_pending = True
            return False

        self._analysis_pending = False
        self._last_analysis_at = now
        self._analysis_in_flight = True
        self.scheduler.spawn(self._analyze(), name="focus-analysis")
        return True

    async def _analyze(self) -> None:
        context = self.current_context
        try:
            artifact = await self._capture_artifact()
            if artifact is not None and self.redactor is not None:
                try:
                    outcome = as_redaction_outcome(await self.redactor(artifact))
                except Exception as e:
                    logger.warning(f"Redaction failed, skipping classification: {e}")
                    return
                if outcome.redacted:
                    logger.debug("Sensitive regions redacted")

            result = await asyncio.wait_for(
                self.classifier(artifact, self.work_context),
                timeout=self.config.analysis_timeout_seconds
            )
            result = as_classification_result(result)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning("Classification timed out, keeping last label")
            return
        except Exception as e:
            logger.warning(f"Classification failed, keeping last label: {e}")
            return
        finally:
            self._analysis_in_flight = False

        if self._running:
            self.accept_classification(result, artifact, context)

    async def _capture_artifact(self) -> Optional[ScreenArtifact]:
        if self.capture_artifact is None:
            return None
        try:
            return await self.capture_artifact()
        except Exception as e:
            logger.warning(f"Screen capture failed: {e}")
            return None

    def accept_classification(
        self,
        result: ClassificationResult,
        artifact: Optional[ScreenArtifact] = None,
        context: Optional[WindowContext] = None,
    ) -> None:
        """Record a classifier verdict and drive the state machine from it

        ``context`` is the window the artifact was captured on; it defaults to
        the most recently polled window.
        """
        label = result.label
        self.history.append(label)
        changed = label != self.last_label
        if changed and self.last_label is not None:
            logger.info(f"Status change: {self.last_label.value} -> {label.value}")
        self.last_label = label
        self.last_reason = result.reason

        consensus = self.consensus
        logger.info(f"Classification: {label.value} (consensus {consensus}/{len(self.history)})")
        self._emit(self.on_classification, ClassificationEvent(
            label=label,
            reason=result.reason,
            consensus=consensus,
            changed=changed,
            timestamp=self.scheduler.now(),
            artifact=artifact,
        ))

        if self.state == FocusState.IDLE:
            logger.debug("Idle, classification recorded without state change")
            return

        if label == FocusLabel.SEMI_DISTRACTED:
            if not self._escalated:
                self._transition(FocusState.SEMI_DISTRACTED, result.reason)
                self._start_escalation_timer()
        else:
            self._cancel_escalation()
            self._escalated = False
            self._transition(label.state, result.reason)

        if self.state in ON_TASK_STATES:
            self._remember_on_task(artifact, result.reason, context or self.current_context)

    def _remember_on_task(
        self,
        artifact: Optional[ScreenArtifact],
        reason: str,
        context: Optional[WindowContext],
    ) -> None:
        # Only windows confirmed on task feed the entity cache
        sample = None
        if context is not None:
            sample = self.sampler.build_sample(context, SampleTrigger.MILESTONE)
            if sample is not None:
                self.cache.add_sample(sample)
        if artifact is None and sample is None:
            return
        self.on_task_reference = OnTaskReference(
            timestamp=self.scheduler.now(),
            artifact=artifact,
            sample=sample,
            reason=reason,
        )

    # State transitions

    def _transition(self, new_state: FocusState, reason: str) -> bool:
        if new_state == self.state:
            return False
        previous = self.state
        self.state = new_state
        transition = StateTransition(
            previous=previous,
            current=new_state,
            reason=reason,
            timestamp=self.scheduler.now(),
        )
        self.transitions.append(transition)
        prev_label = previous.value if previous else "none"
        logger.info(f"State: {prev_label} -> {new_state.value} ({reason})")
        self._emit(self.on_state_change, transition)

        if new_state in REMINDER_STATES:
            self._start_reminders()
            if new_state == FocusState.DISTRACTED:
                self.scheduler.spawn(self._on_distracted(), name="distraction-nudge")
            elif previous not in REMINDER_STATES:
                self.scheduler.spawn(self._remind(), name="distraction-reminder")
        else:
            self._stop_reminders()
        return True

    def _start_escalation_timer(self) -> None:
        if self._escalation_timer is not None:
            return
        self._escalation_timer = self.scheduler.call_later(
            self.config.semi_escalation_seconds, self._escalate, name="semi-escalation"
        )
        logger.debug(f"Escalation timer started ({self.config.semi_escalation_seconds:.0f}s)")

    def _cancel_escalation(self) -> None:
        if self._escalation_timer is not None:
            self.scheduler.cancel(self._escalation_timer)
            self._escalation_timer = None
            logger.debug("Escalation timer cleared")

    def _escalate(self) -> None:
        self._escalation_timer = None
        if not self._running or self.state != FocusState.SEMI_DISTRACTED:
            return
        self._escalated = True
        self._transition(
            FocusState.DISTRACTED,
            f"semi-distracted for {self.config.semi_escalation_seconds:.0f}s"
        )

    # Idle detection

    async def _read_idle(self) -> Optional[float]:
        if self.idle_reader is None:
            return None
        try:
            value = await self.idle_reader()
        except Exception as e:
            logger.warning(f"Failed to read input idle time: {e}")
            return None
        return float(value) if value is not None else None

    async def _check_idle(self) -> None:
        if not self._running:
            return
        idle_seconds = await self._read_idle()
        if idle_seconds is None or not self._running:
            return

        since_change = self.scheduler.now() - self._last_window_change_at
        logger.debug(f"Idle check: input idle {idle_seconds:.0f}s, window unchanged {since_change:.0f}s")

        if self.state == FocusState.IDLE:
            if idle_seconds <= self.config.resume_input_seconds:
                self._resume_from_idle()
        elif (since_change >= self.config.idle_after_no_window_change_seconds
              and idle_seconds >= self.config.idle_input_seconds):
            self._cancel_escalation()
            self._escalated = False
            self._transition(FocusState.IDLE, f"no input for {idle_seconds:.0f}s")

    def _resume_from_idle(self) -> None:
        self._last_window_change_at = self.scheduler.now()
        self._transition(FocusState.FOCUSED, "input resumed")
        self.scheduler.spawn(self._sample_on_resume(), name="idle-to-active-sample")

    async def _sample_on_resume(self) -> None:
        sample = await self.sampler.on_idle_to_active()
        if sample is not None:
            self.cache.add_sample(sample)

    def _on_background_sample(self, sample: Sample) -> None:
        """Heartbeat samples reach the cache only while on task"""
        if self.state in ON_TASK_STATES:
            self.cache.add_sample(sample)
        else:
            logger.debug(f"Dropped {sample.trigger.value} sample while {self.state.value if self.state else 'stopped'}")

    # Nudges and reminders

    async def _on_distracted(self) -> None:
        if self.nudge_generator is None:
            await self._remind()
            return

        meta = CurrentMeta.from_context(self.current_context) if self.current_context else None
        try:
            message = await self.nudge_generator.generate(self.work_context, self.cache, meta)
        except Exception as e:
            logger.warning(f"Nudge generation failed: {e}")
            message = None

        if message is None:
            await self._remind()
        elif self._running and self.state == FocusState.DISTRACTED:
            self._emit_nudge(message, NudgeKind.NUDGE)

    def _start_reminders(self) -> None:
        if self._reminder_timer is not None:
            return
        self._reminder_timer = self.scheduler.call_every(
            self.config.reminder_interval_seconds, self._remind, name="distraction-reminder"
        )
        logger.info("Started periodic distraction reminders")

    def _stop_reminders(self) -> None:
        if self._reminder_timer is None:
            return
        self.scheduler.cancel(self._reminder_timer)
        self._reminder_timer = None
        logger.info("Stopped periodic distraction reminders")

    async def _remind(self) -> None:
        if not self._running or self.state not in REMINDER_STATES:
            return
        if self._reminder_in_flight:
            logger.debug("Reminder already in flight")
            return
        self._reminder_in_flight = True
        try:
            message, kind = await self._reminder_message()
        finally:
            self._reminder_in_flight = False
        if self._running and self.state in REMINDER_STATES:
            self._emit_nudge(message, kind)

    async def _reminder_message(self):
        if self.nudge_generator is not None and self.on_task_reference is not None:
            try:
                message = await self.nudge_generator.generate_continuation(self.work_context, self.on_task_reference)
                return message, NudgeKind.CONTINUATION
            except Exception as e:
                logger.warning(f"Continuation generation failed: {e}")
        return get_fallback_message(), NudgeKind.REMINDER

    def _emit_nudge(self, message: str, kind: NudgeKind) -> None:
        logger.info(f"Nudge ({kind.value}): {message}")
        self._emit(self.on_nudge, NudgeEvent(message=message, kind=kind, timestamp=self.scheduler.now()))

    def _emit(self, callback: Optional[Callable[[Any], Any]], event: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(event)
            if inspect.isawaitable(result):
                self.scheduler.spawn(result, name="event-callback")
        except Exception as e:
            logger.error(f"Event callback failed: {e}", exc_info=True)
