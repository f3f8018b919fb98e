import pytest
from focus_coach.config.config import CacheConfig
from focus_coach.models.sample import Sample, SampleTrigger, WindowContext
from focus_coach.services.entity_cache import EntityCache
from focus_coach.services.scheduler import VirtualScheduler

from fakes import FakeClassifier, FakeContextSource, FakeIdleReader, ManualClock


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler():
    """Virtual scheduler starting at a fixed epoch"""
    return VirtualScheduler(start=1_000_000.0)


@pytest.fixture
def cache_config():
    return CacheConfig()


@pytest.fixture
def make_sample(clock):
    """Factory for samples stamped with the manual clock"""
    def _make(app_id="com.microsoft.VSCode", window_title="auth_service.py - backend",
              entities=None, age_seconds=0.0, **kwargs):
        return Sample(
            timestamp=clock() - age_seconds,
            app_id=app_id,
            window_title=window_title,
            entities=entities if entities is not None else ["auth_service.py", "validateToken"],
            trigger=kwargs.pop("trigger", SampleTrigger.MANUAL),
            **kwargs
        )
    return _make


@pytest.fixture
def cache(clock, cache_config):
    return EntityCache(cache_config=cache_config, clock=clock)


@pytest.fixture
def populated_cache(cache, make_sample):
    """Cache holding one fresh editor sample"""
    cache.add_sample(make_sample(
        entities=["database", "authentication", "validateToken"],
        recent_snippet="def validateToken(token):",
    ))
    return cache


@pytest.fixture
def context_source():
    return FakeContextSource(WindowContext(
        app_id="com.microsoft.VSCode",
        app_name="Code",
        window_title="auth_service.py - backend",
    ))


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def idle_reader():
    return FakeIdleReader(0.0)
