"""
Statistics for the experience network.
"""

import threading
from typing import Any, Dict


class NetworkStats:
    """Thread-safe lookup and mutation counters."""

    def __init__(self):
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._inserts = 0
        self._replacements = 0
        self._rejected_updates = 0
        self._feedback_events = 0

    def record_hit(self):
        """Record a lookup that found a similar node."""
        with self._lock:
            self._hits += 1

    def record_miss(self):
        """Record a lookup without a match."""
        with self._lock:
            self._misses += 1

    def record_insert(self):
        with self._lock:
            self._inserts += 1

    def record_replacement(self):
        """Record a replace-if-better update of an existing node."""
        with self._lock:
            self._replacements += 1

    def record_rejected_update(self):
        """Record a similar experience that did not beat the existing node."""
        with self._lock:
            self._rejected_updates += 1

    def record_feedback(self):
        with self._lock:
            self._feedback_events += 1

    def get_stats(self) -> Dict[str, Any]:
        """
        Get current statistics.

        Returns:
            Dictionary with counters and the lookup hit rate
        """
        with self._lock:
            total_lookups = self._hits + self._misses
            hit_rate = (self._hits / total_lookups * 100) if total_lookups > 0 else 0.0

            return {
                "hits": self._hits,
                "misses": self._misses,
                "inserts": self._inserts,
                "replacements": self._replacements,
                "rejected_updates": self._rejected_updates,
                "feedback_events": self._feedback_events,
                "total_lookups": total_lookups,
                "hit_rate_percent": round(hit_rate, 2)
            }

    def reset(self):
        """Reset all statistics."""
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._inserts = 0
            self._replacements = 0
            self._rejected_updates = 0
            self._feedback_events = 0
