import asyncio
import pytest
from focus_coach.config.config import NudgeConfig
from focus_coach.models.focus_state import OnTaskReference
from focus_coach.models.sample import ConfidenceLevel, CurrentMeta
from focus_coach.services.errors import GenerationError
from focus_coach.services.nudge import NudgeGenerator, SYSTEM_PROMPT, clean_response
from focus_coach.services.postcheck import FALLBACK_MESSAGE, PREFIX, post_check

from fakes import FakeTextGenerator

EDITOR_META = CurrentMeta(app_id="com.microsoft.VSCode", window_title="auth_service.py - backend")


def test_clean_response():
    assert clean_response('  "Your attention score is decreasing, you can try to add tests"  ') == \
        "Your attention score is decreasing, you can try to add tests"
    assert clean_response("first line\nsecond line") == "first line"
    with pytest.raises(GenerationError):
        clean_response("   ")
    with pytest.raises(GenerationError):
        clean_response(None)

@pytest.mark.asyncio
async def test_first_valid_candidate_is_accepted(populated_cache, clock):
    reply = PREFIX + "add a docstring to validateToken"
    generator = NudgeGenerator(FakeTextGenerator([reply]), clock=clock)

    message = await generator.generate("Build login flow", populated_cache, EDITOR_META)

    assert message == reply
    assert generator.last_result.attempts == 1
    assert not generator.last_result.used_fallback
    assert generator.last_result.confidence == "HIGH"
    assert generator.record.session_count == 1

@pytest.mark.asyncio
async def test_prompt_carries_contract_and_context(populated_cache, clock):
    text_generator = FakeTextGenerator([PREFIX + "add a docstring to validateToken"])
    generator = NudgeGenerator(text_generator, clock=clock)

    await generator.generate("Build login flow", populated_cache, EDITOR_META)

    system_prompt, user_prompt = text_generator.calls[0]
    assert system_prompt == SYSTEM_PROMPT
    assert "Work context: Build login flow" in user_prompt
    assert "CONFIDENCE: HIGH" in user_prompt
    assert '"validateToken"' in user_prompt
    assert "RECENT_SNIPPET: def validateToken(token):" in user_prompt

@pytest.mark.asyncio
async def test_invalid_candidates_are_retried(populated_cache, clock):
    replies = [
        PREFIX + "think about the database",
        "Focus on your work",
        '"' + PREFIX + "write one test for authentication" + '"',
    ]
    generator = NudgeGenerator(FakeTextGenerator(replies), clock=clock)

    message = await generator.generate("Build login flow", populated_cache, EDITOR_META)

    assert message == PREFIX + "write one test for authentication"
    assert generator.last_result.attempts == 3

@pytest.mark.asyncio
async def test_exhausted_attempts_fall_back(populated_cache, clock):
    text_generator = FakeTextGenerator([PREFIX + "add comments"] * 5)
    generator = NudgeGenerator(text_generator, clock=clock)

    message = await generator.generate("Build login flow", populated_cache, EDITOR_META)

    assert len(text_generator.calls) == 3
    assert generator.last_result.used_fallback
    assert post_check(message, generator.last_result.entities, ConfidenceLevel.HIGH)
    assert generator.record.session_count == 1

@pytest.mark.asyncio
async def test_generator_errors_count_as_failed_attempts(cache, clock):
    text_generator = FakeTextGenerator([RuntimeError("quota"), GenerationError("empty"), RuntimeError("boom")])
    generator = NudgeGenerator(text_generator, clock=clock)

    message = await generator.generate("Build login flow", cache, None)

    assert message == FALLBACK_MESSAGE
    assert generator.last_result.attempts == 3
    assert generator.last_result.confidence == "LOW"

@pytest.mark.asyncio
async def test_timeout_counts_as_failure(cache, clock):
    async def slow_generator(system_prompt, user_prompt):
        await asyncio.sleep(5)
        return PREFIX + "add comments"

    config = NudgeConfig(generation_timeout_seconds=0.01, max_retries=0)
    generator = NudgeGenerator(slow_generator, nudge_config=config, clock=clock)

    message = await generator.generate("Build login flow", cache, None)

    assert message == FALLBACK_MESSAGE
    assert generator.last_result.used_fallback

@pytest.mark.asyncio
async def test_session_cap_blocks_second_nudge(populated_cache, clock):
    text_generator = FakeTextGenerator([PREFIX + "add a docstring to validateToken"] * 2)
    generator = NudgeGenerator(text_generator, clock=clock)

    assert await generator.generate("Build login flow", populated_cache, EDITOR_META) is not None
    clock.advance(60 * 60)
    assert await generator.generate("Build login flow", populated_cache, EDITOR_META) is None
    assert len(text_generator.calls) == 1

@pytest.mark.asyncio
async def test_cooldown_blocks_until_elapsed(populated_cache, clock):
    config = NudgeConfig(max_per_session=5, cooldown_minutes=4)
    text_generator = FakeTextGenerator([PREFIX + "add a docstring to validateToken"] * 3)
    generator = NudgeGenerator(text_generator, nudge_config=config, clock=clock)

    assert await generator.generate("Build login flow", populated_cache, EDITOR_META)
    clock.advance(3 * 60)
    assert not generator.can_generate()
    assert await generator.generate("Build login flow", populated_cache, EDITOR_META) is None
    clock.advance(60)
    assert generator.can_generate()

@pytest.mark.asyncio
async def test_force_generate_restores_limits(populated_cache, clock):
    text_generator = FakeTextGenerator([PREFIX + "add a docstring to validateToken"] * 2)
    generator = NudgeGenerator(text_generator, clock=clock)
    await generator.generate("Build login flow", populated_cache, EDITOR_META)

    message = await generator.force_generate("Build login flow", populated_cache, EDITOR_META)

    assert message is not None
    assert generator.record.cooldown_seconds == 4 * 60
    assert generator.record.session_count == 1
    assert not generator.can_generate()

@pytest.mark.asyncio
async def test_reset_session(populated_cache, clock):
    generator = NudgeGenerator(FakeTextGenerator([PREFIX + "add a docstring to validateToken"]), clock=clock)
    await generator.generate("Build login flow", populated_cache, EDITOR_META)
    generator.reset_session()
    assert generator.can_generate()
    assert generator.stats()["session_nudge_count"] == 0
    assert generator.stats()["minutes_since_last_nudge"] is None

@pytest.mark.asyncio
async def test_continuation_uses_on_task_reference(make_sample, clock):
    text_generator = FakeTextGenerator([PREFIX + "add one assertion to validateToken"])
    generator = NudgeGenerator(text_generator, clock=clock)
    reference = OnTaskReference(timestamp=clock(), sample=make_sample(), reason="editing auth service")

    message = await generator.generate_continuation("Build login flow", reference)

    assert message == PREFIX + "add one assertion to validateToken"
    _, user_prompt = text_generator.calls[0]
    assert "LAST_ON_TASK: editing auth service" in user_prompt
    assert "CONFIDENCE: MEDIUM" in user_prompt

@pytest.mark.asyncio
async def test_continuation_ignores_session_cap(populated_cache, make_sample, clock):
    reply = PREFIX + "add a docstring to validateToken"
    generator = NudgeGenerator(FakeTextGenerator([reply] * 2), clock=clock)
    await generator.generate("Build login flow", populated_cache, EDITOR_META)
    assert not generator.can_generate()

    reference = OnTaskReference(timestamp=clock(), sample=make_sample())
    assert await generator.generate_continuation("Build login flow", reference) == reply

@pytest.mark.asyncio
async def test_continuation_without_reference_falls_back(clock):
    generator = NudgeGenerator(FakeTextGenerator([]), clock=clock)
    assert await generator.generate_continuation("Build login flow", None) == FALLBACK_MESSAGE

@pytest.mark.asyncio
@pytest.mark.parametrize("replies", [
    [],
    ["nonsense"] * 3,
    [PREFIX + "plan the database"] * 3,
    [PREFIX + "add comments"] * 3,
    [PREFIX + " ".join(["add"] * 20)] * 3,
])
async def test_generate_output_always_passes_post_check(populated_cache, clock, replies):
    """Every message generate returns satisfies the contract it was generated under"""
    generator = NudgeGenerator(FakeTextGenerator(replies), clock=clock)

    message = await generator.generate("Build login flow", populated_cache, EDITOR_META)

    result = generator.last_result
    assert post_check(message, result.entities, ConfidenceLevel(result.confidence))
