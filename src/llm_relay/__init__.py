"""Resilient multi-role request orchestrator for LLM backends."""

__version__ = "0.1.0"
