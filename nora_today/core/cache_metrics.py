"""In-memory lesson content cache metrics: hit/miss/set/invalidation counts and hit ratio."""
from __future__ import annotations

_hits = 0
_misses = 0
_validation_misses = 0
_sets = 0
_invalidations = 0


def record_cache_get(hit: bool) -> None:
    global _hits, _misses
    if hit:
        _hits += 1
    else:
        _misses += 1


def record_validation_miss() -> None:
    """A cached entry existed but no longer fit the lesson structure."""
    global _validation_misses, _misses
    _validation_misses += 1
    _misses += 1


def record_cache_set() -> None:
    global _sets
    _sets += 1


def record_invalidation() -> None:
    global _invalidations
    _invalidations += 1


def get_cache_metrics() -> dict:
    total_gets = _hits + _misses
    hit_ratio = (_hits / total_gets) if total_gets else None
    return {
        "cache_hits": _hits,
        "cache_misses": _misses,
        "cache_validation_misses": _validation_misses,
        "cache_sets": _sets,
        "cache_invalidations": _invalidations,
        "cache_get_total": total_gets,
        "cache_hit_ratio": round(hit_ratio, 4) if hit_ratio is not None else None,
    }


def reset_cache_metrics() -> None:
    """Reset counters (e.g. for tests)."""
    global _hits, _misses, _validation_misses, _sets, _invalidations
    _hits = 0
    _misses = 0
    _validation_misses = 0
    _sets = 0
    _invalidations = 0
