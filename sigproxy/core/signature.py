"""thought_signature injection for OpenAI-format chat histories.

Gemini 3.1 Pro requires every tool call it generated earlier in the
conversation to carry ``extra_content.google.thought_signature``. OpenAI-style
clients drop that non-standard field when they replay the history, and Google
answers ``400 INVALID_ARGUMENT: Function call is missing a thought_signature``.

The functions here rebuild the ``messages`` array so that each assistant tool
call missing a signature gets the documented bypass marker. Inputs are never
mutated: every touched level (message, tool call, ``extra_content``,
``google``) is a new dict, untouched values are shared.
"""

from __future__ import annotations

from typing import Any

from sigproxy.config.constants import BYPASS_SIGNATURE, PATCHED_MODEL_ID


def requires_signature_patch(model: Any) -> bool:
    return model == PATCHED_MODEL_ID


def has_thought_signature(tool_call: Any) -> bool:
    if not isinstance(tool_call, dict):
        return False
    extra_content = tool_call.get("extra_content")
    if not isinstance(extra_content, dict):
        return False
    google = extra_content.get("google")
    if not isinstance(google, dict):
        return False
    return bool(google.get("thought_signature"))


def _with_bypass_signature(tool_call: dict[str, Any]) -> dict[str, Any]:
    extra_content = tool_call.get("extra_content")
    patched_extra = dict(extra_content) if isinstance(extra_content, dict) else {}
    google = patched_extra.get("google")
    patched_google = dict(google) if isinstance(google, dict) else {}
    patched_google["thought_signature"] = BYPASS_SIGNATURE
    patched_extra["google"] = patched_google

    patched = dict(tool_call)
    patched["extra_content"] = patched_extra
    return patched


def _patch_tool_call(tool_call: Any) -> Any:
    if not isinstance(tool_call, dict) or has_thought_signature(tool_call):
        return tool_call
    return _with_bypass_signature(tool_call)


def _patch_message(message: Any) -> Any:
    if not isinstance(message, dict):
        return message
    tool_calls = message.get("tool_calls")
    if message.get("role") != "assistant" or not isinstance(tool_calls, list):
        return message
    patched = dict(message)
    patched["tool_calls"] = [_patch_tool_call(tool_call) for tool_call in tool_calls]
    return patched


def inject_thought_signatures(messages: Any) -> Any:
    """Return ``messages`` with the bypass signature on every unsigned assistant tool call.

    Anything that is not a list comes back unchanged. Existing non-empty
    signatures are kept, so applying the function twice equals applying it once.
    """

    if not isinstance(messages, list):
        return messages
    return [_patch_message(message) for message in messages]


def count_injected(before: Any, after: Any) -> int:
    """Number of tool calls that gained the bypass marker between ``before`` and ``after``."""

    if not isinstance(before, list) or not isinstance(after, list):
        return 0
    injected = 0
    for original, patched in zip(before, after):
        if original is patched or not isinstance(patched, dict):
            continue
        original_calls = original.get("tool_calls") if isinstance(original, dict) else None
        patched_calls = patched.get("tool_calls")
        if not isinstance(original_calls, list) or not isinstance(patched_calls, list):
            continue
        injected += sum(1 for old, new in zip(original_calls, patched_calls) if old is not new)
    return injected


def patch_chat_payload(payload: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """Apply the model gate to a parsed chat-completions body.

    Returns the body to forward and whether the signature patch ran. Only
    ``messages`` is replaced; every other top-level field keeps its value.
    """

    if not requires_signature_patch(payload.get("model")):
        return payload, False
    if "messages" not in payload:
        return payload, True
    patched = dict(payload)
    patched["messages"] = inject_thought_signatures(payload["messages"])
    return patched, True
