"""
Core services: errors, logging, session tracking, prompts and reasoning.

LLM providers live in ``autonomy.core.providers`` and are imported on demand.
"""
