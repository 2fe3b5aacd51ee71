"""
Collective experience cache: similarity index, feedback and need prediction.
"""

from .similarity import calculate_similarity, tokenize, token_similarity
from .stats import NetworkStats
from .network import ExperienceNetwork

__all__ = [
    "calculate_similarity",
    "tokenize",
    "token_similarity",
    "NetworkStats",
    "ExperienceNetwork",
]
