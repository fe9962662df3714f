"""Gemini thought_signature bypass proxy for OpenAI-style chat clients."""

__version__ = "0.1.0"
