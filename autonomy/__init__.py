"""
autonomy: autonomous task orchestration with a collective experience cache.
"""

__version__ = "0.1.0"
