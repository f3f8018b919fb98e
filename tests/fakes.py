from typing import List, Optional

from focus_coach.models.focus_state import ClassificationResult, FocusLabel
from focus_coach.models.sample import WindowContext


class ManualClock:
    """Clock that only moves when told to"""

    def __init__(self, start: float = 1_000_000.0):
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeContextSource:
    """captureActiveWindowContext fake; set ``context`` or ``error`` to script it"""

    def __init__(self, context: Optional[WindowContext] = None):
        self.context = context
        self.error: Optional[Exception] = None
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.context

    def switch(self, app_id: str, window_title: str, **kwargs) -> None:
        self.context = WindowContext(app_id=app_id, app_name=kwargs.pop("app_name", app_id), window_title=window_title, **kwargs)


class FakeClassifier:
    """classifyFocus fake returning the scripted label"""

    def __init__(self, label: FocusLabel = FocusLabel.FOCUSED, reason: str = "on task"):
        self.label = label
        self.reason = reason
        self.error: Optional[Exception] = None
        self.calls: List[tuple] = []

    async def __call__(self, artifact, work_context):
        self.calls.append((artifact, work_context))
        if self.error is not None:
            raise self.error
        return ClassificationResult(label=self.label, reason=self.reason)


class FakeIdleReader:
    def __init__(self, seconds: Optional[float] = 0.0):
        self.seconds = seconds
        self.error: Optional[Exception] = None

    async def __call__(self):
        if self.error is not None:
            raise self.error
        return self.seconds


class FakeTextGenerator:
    """generateText fake; replies are consumed in order, exceptions are raised"""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls: List[tuple] = []

    async def __call__(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return reply
