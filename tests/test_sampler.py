import pytest
from focus_coach.config.config import SamplerConfig
from focus_coach.models.sample import SampleTrigger, WindowContext
from focus_coach.services.sampler import (
    ContextSampler,
    derive_document_id,
    extract_from_text,
    is_browser,
    is_editor,
)


def test_extract_camel_and_snake_case():
    entities = extract_from_text("fix validateToken in auth_service module")
    assert "validateToken" in entities
    assert "auth_service" in entities

def test_extract_call_like_and_filenames():
    entities = extract_from_text("parse_config() failed in settings.py")
    assert "parse_config" in entities
    assert "settings.py" in entities

def test_extract_capitalized_runs_and_domains():
    entities = extract_from_text("Reading Machine Learning notes on docs.python.org")
    assert "Reading Machine Learning" in entities
    assert "docs.python.org" in entities

def test_extract_filters_length_and_duplicates():
    entities = extract_from_text("aB aB myVar myVar " + "x" * 10 + "Y" + "z" * 40)
    assert "aB" not in entities
    assert entities.count("myVar") == 1
    assert all(3 <= len(e) <= 40 for e in entities)

def test_plain_lowercase_words_are_not_snake_case():
    assert extract_from_text("hello world") == []

def test_extract_empty_text():
    assert extract_from_text(None) == []
    assert extract_from_text("") == []

@pytest.mark.parametrize("title,expected", [
    ("/Users/me/project/main.py - Code", "/Users/me/project/main.py"),
    ("C:\\work\\report.docx - Word", "C:\\work\\report.docx"),
    ("notes.md — project", "notes.md"),
    ("Welcome", None),
    (None, None),
])
def test_derive_document_id(title, expected):
    assert derive_document_id(title) == expected

def test_app_kinds():
    assert is_browser("com.google.Chrome")
    assert is_editor("com.jetbrains.pycharm")
    assert not is_browser("com.microsoft.VSCode")
    assert not is_editor(None)

@pytest.mark.asyncio
async def test_sample_context_builds_sample(context_source, clock):
    sampler = ContextSampler(context_source, clock=clock)
    sampler.start()

    sample = await sampler.sample_context(SampleTrigger.MILESTONE)

    assert sample.app_id == "com.microsoft.VSCode"
    assert sample.doc_id == "auth_service.py"
    assert sample.trigger == SampleTrigger.MILESTONE
    assert sample.timestamp == clock()
    assert "auth_service.py" in sample.entities

@pytest.mark.asyncio
async def test_sample_context_inactive_returns_none(context_source):
    sampler = ContextSampler(context_source)
    assert await sampler.sample_context() is None
    assert context_source.calls == 0

@pytest.mark.asyncio
async def test_capture_failure_is_not_fatal(context_source):
    context_source.error = RuntimeError("osascript failed")
    sampler = ContextSampler(context_source)
    sampler.start()
    assert await sampler.sample_context() is None

@pytest.mark.asyncio
async def test_no_app_context_returns_none(context_source):
    context_source.context = None
    sampler = ContextSampler(context_source)
    sampler.start()
    assert await sampler.sample_context() is None

@pytest.mark.asyncio
async def test_dict_context_is_accepted(clock):
    async def source():
        return {"appId": "com.google.Chrome", "windowTitle": "OAuth flows", "url": "https://auth0.com/docs/flows"}

    sampler = ContextSampler(source, clock=clock)
    sampler.start()
    sample = await sampler.sample_context()

    assert sample.url_domain == "auth0.com"
    assert "auth0.com" in sample.entities
    assert sample.recent_snippet == "OAuth flows"

def test_entities_are_capped(clock):
    text = " ".join(f"camelCase{i}Word" for i in range(30))
    sampler = ContextSampler(lambda: None, clock=clock)
    sample = sampler.build_sample(WindowContext(app_id="com.apple.TextEdit", on_screen_text=text))
    assert len(sample.entities) == 12

def test_snippet_truncated(clock):
    sampler = ContextSampler(lambda: None, sampler_config=SamplerConfig(snippet_length=20), clock=clock)
    sample = sampler.build_sample(WindowContext(app_id="com.apple.TextEdit", on_screen_text="a" * 100))
    assert sample.recent_snippet == "a" * 20

def test_timestamps_strictly_increase(clock):
    sampler = ContextSampler(lambda: None, clock=clock)
    context = WindowContext(app_id="com.apple.TextEdit", window_title="Draft")
    first = sampler.build_sample(context)
    second = sampler.build_sample(context)
    assert second.timestamp > first.timestamp

@pytest.mark.asyncio
async def test_heartbeat_delivers_samples(context_source, scheduler):
    received = []
    sampler = ContextSampler(context_source, scheduler=scheduler, on_sample=received.append)
    sampler.start()

    await scheduler.tick(7 * 60)
    assert len(received) == 1
    assert received[0].trigger == SampleTrigger.HEARTBEAT

    sampler.stop()
    await scheduler.tick(7 * 60)
    assert len(received) == 1

@pytest.mark.asyncio
async def test_idle_to_active_trigger(context_source, clock):
    sampler = ContextSampler(context_source, clock=clock)
    sampler.start()
    sample = await sampler.on_idle_to_active()
    assert sample.trigger == SampleTrigger.IDLE_TO_ACTIVE
