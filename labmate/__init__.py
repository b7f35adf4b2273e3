"""Labmate - resilient realtime voice client for Gemini."""

__version__ = "0.1.0"
