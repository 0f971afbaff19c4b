"""
Response repair and validation — raw completion text to AgentStep.

Repair is deliberately narrow: strip code fences, take the first balanced
{...} span, json.loads it. Anything looser belongs in a better prompt.
"""

import json
import re
from typing import Any, Optional

from habitat_kernel.models.agent import AgentAction, AgentMessage, AgentStep
from habitat_kernel.planner.errors import ParseError, ValidationError

_FENCE = re.compile(r"```(?:json|JSON)?")


def strip_code_fences(text: str) -> str:
    return _FENCE.sub("", text).strip()


def extract_json_object(text: str) -> Optional[str]:
    """
    First balanced {...} span in `text`, or None.
    Braces inside string literals (including escaped quotes) are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next opening brace.
        start = text.find("{", start + 1)
    return None


def repair_json(text: str) -> Any:
    cleaned = strip_code_fences(text)
    span = extract_json_object(cleaned)
    if span is None:
        raise ParseError(f"No JSON object in response: {text[:120]!r}")
    try:
        return json.loads(span)
    except json.JSONDecodeError as e:
        raise ParseError(f"Malformed JSON in response: {e.msg}", cause=e)


def validate_agent_step(payload: Any) -> AgentStep:
    """Check the AgentStep shape field by field and build the model."""
    if not isinstance(payload, dict):
        raise ValidationError("Response is not a JSON object")

    messages = payload.get("messages_to")
    actions = payload.get("actions")
    explain = payload.get("explain")

    if not isinstance(messages, list):
        raise ValidationError("messages_to must be an array")
    if not isinstance(actions, list):
        raise ValidationError("actions must be an array")
    if not isinstance(explain, str):
        raise ValidationError("explain must be a string")

    parsed_messages = []
    for i, msg in enumerate(messages):
        if not isinstance(msg, dict) or "to" not in msg or "content" not in msg:
            raise ValidationError(f"messages_to[{i}] needs 'to' and 'content'")
        parsed_messages.append(AgentMessage(to=str(msg["to"]), content=str(msg["content"])))

    parsed_actions = []
    for i, action in enumerate(actions):
        if not isinstance(action, dict):
            raise ValidationError(f"actions[{i}] is not an object")
        name = action.get("name")
        if not isinstance(name, str) or not name:
            raise ValidationError(f"actions[{i}].name must be a non-empty string")
        args = action.get("args")
        if not isinstance(args, dict):
            raise ValidationError(f"actions[{i}].args must be an object")
        parsed_actions.append(AgentAction(name=name, args=args))

    return AgentStep(messages_to=parsed_messages, actions=parsed_actions, explain=explain)


def parse_agent_step(text: str) -> AgentStep:
    """Repair then validate. Raises ParseError or ValidationError."""
    return validate_agent_step(repair_json(text))
