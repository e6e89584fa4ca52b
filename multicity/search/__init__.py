"""Multi-segment search core - keys, cache, submission dedup, polling, orchestration."""

from multicity.search.cache import ResultCache
from multicity.search.dedup import SubmissionDeduplicator
from multicity.search.keys import build_segment_key
from multicity.search.orchestrator import SegmentOrchestrator
from multicity.search.poller import Poller, PollerRegistry, SearchAPI

__all__ = [
    "Poller",
    "PollerRegistry",
    "ResultCache",
    "SearchAPI",
    "SegmentOrchestrator",
    "SubmissionDeduplicator",
    "build_segment_key",
]
