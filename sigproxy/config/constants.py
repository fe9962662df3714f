"""Build-time constants: upstream origin, patched model and bypass marker."""

from __future__ import annotations

UPSTREAM_BASE_URL = "https://generativelanguage.googleapis.com"

# Google's documented sentinel telling the thought_signature validator to skip
# enforcement when the original signature is unavailable.
BYPASS_SIGNATURE = "skip_thought_signature_validator"

# Only this model requires thought_signature injection.
PATCHED_MODEL_ID = "models/gemini-3.1-pro-preview-customtools"

# VS Code appends "v1/chat/completions" to the configured base URL
# ("http://localhost:3000/v1beta/openai/"); Google serves the endpoint without
# the extra "/v1" segment.
CLIENT_COMPLETIONS_PATH = "/v1beta/openai/v1/chat/completions"
UPSTREAM_COMPLETIONS_PATH = "/v1beta/openai/chat/completions"

DEFAULT_CONTENT_TYPE = "application/json"

COMPLETIONS_FORWARD_HEADERS = ("content-type", "authorization")
PASSTHROUGH_FORWARD_HEADERS = ("authorization", "content-type", "accept")

BODYLESS_METHODS = frozenset({"GET", "HEAD"})
