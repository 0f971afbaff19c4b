"""Prompt construction for one device's planning call."""

from habitat_kernel.models.context import AgentContext

SYSTEM_PREAMBLE = (
    "You are a device agent in a simulated smart home.\n"
    "You must output ONLY valid JSON with these exact keys: messages_to, actions, explain.\n"
    "Never output explanatory text outside the JSON structure.\n"
    "\n"
    "CRITICAL: Your response must be valid JSON that can be parsed directly."
)

OUTPUT_CONTRACT = (
    "OUTPUT REQUIREMENTS:\n"
    "Return ONLY a JSON object with this structure:\n"
    "{\n"
    '  "messages_to": [{"to": "device_name", "content": "message"}],\n'
    '  "actions": [{"name": "action_name", "args": {"param": "value"}}],\n'
    '  "explain": "One sentence explaining your decision"\n'
    "}\n"
    "Use only the actions listed under AVAILABLE ACTIONS.\n"
    "Do not include any text before or after the JSON object."
)

DEFAULT_INSTRUCTIONS = "Act according to your goals and constraints."

CONNECTION_PROBE = 'Test connection. Respond with: {"test": true}'


def _fmt(value) -> str:
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def build_agent_prompt(context: AgentContext) -> str:
    """Render the full prompt for one device. Pure function of the context."""
    spec = context.spec
    room = context.room_snapshot

    goals = ", ".join(f"{g.name} (weight: {g.weight:.2f})" for g in spec.goals) or "none"
    constraints = ", ".join(spec.constraints) or "none"
    identity = (
        "DEVICE IDENTITY:\n"
        f"Name: {spec.name}\n"
        f"Id: {context.device_id}\n"
        f"Room: {spec.room}\n"
        f"Personality: {spec.personality or 'neutral'}\n"
        f"Communication style: {spec.communication_style}\n"
        f"Goals: {goals}\n"
        f"Constraints: {constraints}"
    )

    conditions = ", ".join(
        f"{key}: {_fmt(getattr(room, key))}"
        for key in ("temperature", "lumens", "noise", "humidity", "mood_score")
    )
    state = (
        "CURRENT STATE:\n"
        f"Time: {int(context.world_time)}s\n"
        f"Room conditions: {conditions}"
    )
    if room.sensors:
        readings = ", ".join(f"{k}: {_fmt(v)}" for k, v in sorted(room.sensors.items()))
        state += f"\nSensor readings: {readings}"
    if context.resources:
        budget = ", ".join(f"{k}: {_fmt(v)}" for k, v in sorted(context.resources.items()))
        state += f"\nResources: {budget}"

    actions = "AVAILABLE ACTIONS:\n" + (", ".join(context.available_actions) or "idle")

    sections = [SYSTEM_PREAMBLE, identity, state, actions]

    if context.last_messages:
        sections.append(
            "RECENT MESSAGES:\n"
            + "\n".join(f"{m.sender}: {m.content}" for m in context.last_messages)
        )
    if context.other_devices:
        sections.append(
            "OTHER DEVICES:\n"
            + "\n".join(
                f"{d.name} ({d.id}) in {d.room} ({d.status})" for d in context.other_devices
            )
        )

    policies = context.policies
    policy_lines = ["POLICIES:", "Priority order: " + " > ".join(policies.priority_order)]
    if policies.quiet_hours:
        policy_lines.append(
            f"Quiet hours: {policies.quiet_hours.start} - {policies.quiet_hours.end}"
        )
    sections.append("\n".join(policy_lines))

    sections.append(spec.instructions or DEFAULT_INSTRUCTIONS)
    sections.append(OUTPUT_CONTRACT)
    return "\n\n".join(sections)
