"""Warlord: LLM-driven perpetual swap trading controller with hard risk reconciliation."""

__version__ = "1.0.0"
