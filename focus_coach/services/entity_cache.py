"""Ring buffer of recent context samples with confidence scoring"""
import logging
import re
import time
from typing import Callable, Dict, List, Optional

from focus_coach.config.config import CacheConfig, config as default_config
from focus_coach.models.sample import ConfidenceLevel, CurrentMeta, MatchResult, Sample, normalize_entities

logger = logging.getLogger(__name__)

APP_WEIGHT = 0.5
TITLE_WEIGHT = 0.3
DOMAIN_WEIGHT = 0.2

_TOKEN = re.compile(r"\b\w+\b")


def tokenize(text: str) -> List[str]:
    return _TOKEN.findall(text.lower())


def text_similarity(first: Optional[str], second: Optional[str]) -> float:
    """Case-folded token Jaccard similarity"""
    if not first or not second:
        return 0.0
    tokens1 = set(tokenize(first))
    tokens2 = set(tokenize(second))
    union = tokens1 | tokens2
    if not union:
        return 0.0
    return len(tokens1 & tokens2) / len(union)


class EntityCache:
    """Bounded, time-decayed memory of recent samples"""

    def __init__(self, cache_config: Optional[CacheConfig] = None, clock: Optional[Callable[[], float]] = None):
        self.config = cache_config or default_config.cache
        self.clock = clock or time.time
        self._samples: List[Sample] = []

    @property
    def max_age_seconds(self) -> float:
        return self.config.stale_minutes * 60

    def __len__(self) -> int:
        return len(self._samples)

    def add_sample(self, sample: Optional[Sample]) -> None:
        """Merge a sample into a matching entry or push it to the front of the ring"""
        if sample is None or not sample.app_id:
            logger.warning("Invalid sample provided to EntityCache")
            return

        index = self._find_similar(sample)
        if index is not None:
            existing = self._samples.pop(index)
            merged = sample.model_copy(update={
                "entities": normalize_entities(
                    list(existing.entities) + list(sample.entities),
                    limit=self.config.max_entities
                ),
                "merged_count": existing.merged_count + 1,
            })
            self._samples.insert(0, merged)
            logger.debug(f"Merged sample with existing ({len(merged.entities)} entities)")
        else:
            self._samples.insert(0, sample)
            if len(self._samples) > self.config.capacity:
                evicted = self._samples[self.config.capacity:]
                self._samples = self._samples[:self.config.capacity]
                logger.debug(f"Evicted {len(evicted)} oldest samples")
            logger.debug(f"Added new sample to cache ({len(self._samples)}/{self.config.capacity})")

        self._purge_stale()

    def get_most_recent(self) -> Optional[Sample]:
        self._purge_stale()
        return self._samples[0] if self._samples else None

    def get_all_recent(self) -> List[Sample]:
        self._purge_stale()
        return list(self._samples)

    def match_confidence(self, current_meta: Optional[CurrentMeta]) -> MatchResult:
        """Score the current activity against the most recent cached sample"""
        if current_meta is None or not self._samples:
            return MatchResult()

        most_recent = self._samples[0]
        score = self.similarity_score(current_meta, most_recent)

        if self._is_stale(most_recent):
            logger.debug(f"Most recent sample is stale, forcing LOW (score: {score:.2f})")
            self._purge_stale()
            return MatchResult(confidence=ConfidenceLevel.LOW, score=score, sample=most_recent)

        if score >= self.config.confidence_high:
            confidence = ConfidenceLevel.HIGH
        elif score >= self.config.confidence_medium:
            confidence = ConfidenceLevel.MEDIUM
        else:
            confidence = ConfidenceLevel.LOW

        logger.info(f"Confidence: {confidence.value} (score: {score:.2f})")
        return MatchResult(confidence=confidence, score=score, sample=most_recent)

    def similarity_score(self, current: CurrentMeta, sample: Sample) -> float:
        """Weighted app, title and domain agreement, clamped to [0, 1]"""
        score = 0.0
        if current.app_id == sample.app_id:
            score += APP_WEIGHT
        if current.window_title and sample.window_title:
            score += TITLE_WEIGHT * text_similarity(current.window_title, sample.window_title)
        if current.url_domain and sample.url_domain and current.url_domain == sample.url_domain:
            score += DOMAIN_WEIGHT
        return max(0.0, min(score, 1.0))

    def _find_similar(self, sample: Sample) -> Optional[int]:
        for index, existing in enumerate(self._samples):
            if existing.app_id != sample.app_id:
                continue
            if text_similarity(sample.window_title, existing.window_title) > self.config.merge_similarity:
                return index
            if sample.url_domain and sample.url_domain == existing.url_domain:
                return index
            if sample.doc_id and sample.doc_id == existing.doc_id:
                return index
        return None

    def _is_stale(self, sample: Sample) -> bool:
        return self.clock() - sample.timestamp >= self.max_age_seconds

    def _purge_stale(self) -> None:
        before = len(self._samples)
        self._samples = [s for s in self._samples if not self._is_stale(s)]
        removed = before - len(self._samples)
        if removed:
            logger.info(f"Cleaned {removed} stale entries from cache")

    def clear(self) -> None:
        self._samples = []
        logger.info("EntityCache cleared")

    def stats(self) -> Dict:
        """Summary of the cache contents"""
        self._purge_stale()
        now = self.clock()
        return {
            "sample_count": len(self._samples),
            "total_entities": sum(len(s.entities) for s in self._samples),
            "unique_apps": len({s.app_id for s in self._samples}),
            "oldest_sample_age_minutes": round((now - self._samples[-1].timestamp) / 60) if self._samples else 0,
        }

    def debug_dump(self) -> None:
        """Log the ring contents"""
        now = self.clock()
        logger.debug(f"EntityCache: {len(self._samples)}/{self.config.capacity} samples")
        for i, sample in enumerate(self._samples):
            age = round((now - sample.timestamp) / 60)
            preview = ", ".join(sample.entities[:3])
            more = "..." if len(sample.entities) > 3 else ""
            logger.debug(f"  [{i}] {sample.app_id} ({age}min ago) - {len(sample.entities)} entities: {preview}{more}")
