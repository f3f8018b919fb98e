import pytest
from pydantic import ValidationError
from focus_coach.models.focus_state import ClassificationResult, FocusLabel, FocusState, NudgeRecord
from focus_coach.models.sample import CurrentMeta, Sample, WindowContext, normalize_entities
from focus_coach.services.collaborators import as_classification_result, as_redaction_outcome, as_window_context


def test_normalize_entities():
    entities = ["ab", " validateToken ", "validateToken", "x" * 41, 42, "auth_service"]
    assert normalize_entities(entities) == ["validateToken", "auth_service"]
    assert normalize_entities([f"entity{i}" for i in range(20)], limit=3) == ["entity0", "entity1", "entity2"]

def test_window_context_derives_domain():
    context = WindowContext(app_id="com.google.Chrome", url="https://docs.python.org/3/library/")
    assert context.url_domain == "docs.python.org"

    explicit = WindowContext(app_id="com.google.Chrome", url="https://a.example.com", url_domain="example.com")
    assert explicit.url_domain == "example.com"

def test_window_identity():
    assert WindowContext(app_id="com.microsoft.VSCode", app_name="Code", window_title="main.py").identity == "Code - main.py"
    assert WindowContext(app_id="com.apple.finder").identity == "com.apple.finder - No Window"

def test_sample_is_frozen_and_capped():
    sample = Sample(timestamp=1.0, app_id="com.apple.TextEdit", entities=[f"entity{i}" for i in range(20)])
    assert len(sample.entities) == 12
    with pytest.raises(ValidationError):
        sample.app_id = "other"

def test_sample_requires_app_id():
    with pytest.raises(ValidationError):
        Sample(timestamp=1.0, app_id="")

def test_sample_meta():
    sample = Sample(timestamp=1.0, app_id="com.google.Chrome", window_title="Docs", url_domain="stripe.com")
    assert sample.meta == CurrentMeta(app_id="com.google.Chrome", window_title="Docs", url_domain="stripe.com")

def test_focus_label_maps_to_state():
    assert FocusLabel.FOCUSED.state == FocusState.FOCUSED
    assert FocusLabel.SEMI_DISTRACTED.state == FocusState.SEMI_DISTRACTED
    assert FocusLabel.DISTRACTED.state == FocusState.DISTRACTED

def test_nudge_record_throttles():
    record = NudgeRecord(cooldown_seconds=240, max_per_session=2)
    assert record.can_send(0)
    record.register(0)
    assert not record.can_send(239)
    assert record.can_send(240)
    record.register(240)
    assert not record.can_send(10_000)
    record.reset()
    assert record.can_send(10_000)

def test_as_window_context_accepts_mappings():
    context = as_window_context({"appId": "com.google.Chrome", "windowTitle": "Docs", "url": "https://stripe.com/docs"})
    assert context.app_id == "com.google.Chrome"
    assert context.window_title == "Docs"
    assert context.url_domain == "stripe.com"

    assert as_window_context(None) is None
    assert as_window_context({"windowTitle": "no app"}) is None
    with pytest.raises(TypeError):
        as_window_context("com.google.Chrome")

def test_as_classification_result():
    result = as_classification_result({"status": "distracted", "reason": "video"})
    assert result.label == FocusLabel.DISTRACTED
    assert result.reason == "video"

    original = ClassificationResult(label=FocusLabel.FOCUSED)
    assert as_classification_result(original) is original
    with pytest.raises(TypeError):
        as_classification_result("focused")

def test_as_redaction_outcome():
    assert as_redaction_outcome({"redacted": True}).redacted
    assert not as_redaction_outcome(None).redacted
