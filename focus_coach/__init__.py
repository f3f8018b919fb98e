"""
Focus Coach - focus state monitoring with constrained coaching nudges
"""

__version__ = "0.1.0"

from .services.sampler import ContextSampler
from .services.entity_cache import EntityCache
from .services.nudge import NudgeGenerator
from .services.stabilizer import FocusStabilizer
from .services.postcheck import post_check, detailed_post_check, get_fallback_message
from .models.sample import Sample, CurrentMeta, ConfidenceLevel
from .models.focus_state import FocusState, FocusLabel

__all__ = [
    'ContextSampler',
    'EntityCache',
    'NudgeGenerator',
    'FocusStabilizer',
    'post_check',
    'detailed_post_check',
    'get_fallback_message',
    'Sample',
    'CurrentMeta',
    'ConfidenceLevel',
    'FocusState',
    'FocusLabel',
]
