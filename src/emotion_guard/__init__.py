"""Emotion Guard: pre-trade stress risk gate."""

__version__ = "0.1.0"
