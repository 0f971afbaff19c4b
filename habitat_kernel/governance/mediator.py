"""
Conflict Mediator — resolves simultaneous device proposals into one approved action set.

Behavioral Contract:
- Accepts the tick's DeviceProposals and the current WorldState (read-only here)
- Groups conflicting proposals, runs a utility tournament per group, drops losers
- Applies hard rules (strip violating actions), soft rules (log only),
  quiet hours and the power ceiling, in that order
- Every resolution and every rule firing yields an explanatory WorldEvent
- Never raises for bad input: unknown devices are logged and skipped
- Same seed + same proposal order = identical MediationResult
"""

from typing import Dict, List, Optional

from loguru import logger

from habitat_kernel.execution.actuation import loud_magnitude
from habitat_kernel.governance.rules import (
    action_violates,
    active_rules,
    rule_applies,
    rule_room,
)
from habitat_kernel.models.agent import (
    HIGH_POWER_ACTIONS,
    LIGHTING_ACTIONS,
    LOUD_ACTIONS,
    TEMPERATURE_ACTIONS,
    AgentAction,
)
from habitat_kernel.models.config import MediationConfig
from habitat_kernel.models.mediation import (
    ApprovedAction,
    ConflictResolution,
    DeviceProposal,
    MediationResult,
    RuleFiring,
)
from habitat_kernel.models.world import WorldState
from habitat_kernel.rng.source import RandomSource
from habitat_kernel.world_model.clock import in_window
from habitat_kernel.world_model.events import make_event

PRIORITY_MESSAGES = {
    "safety": "Safety takes precedence over all other concerns",
    "comfort": "User comfort is prioritized",
    "efficiency": "Energy efficiency wins out",
    "privacy": "Privacy protection is maintained",
    "security": "Security measures take priority",
}


def _names(step) -> set:
    return {a.name for a in step.actions}


class ConflictMediator:
    """
    Evaluates proposals against policies. Holds no per-tick state;
    the only side effect is drawing tie-break values from the shared RandomSource.
    """

    def __init__(self, rng: RandomSource, config: Optional[MediationConfig] = None):
        self.rng = rng
        self.config = config or MediationConfig()

    def mediate(self, proposals: List[DeviceProposal], world: WorldState) -> MediationResult:
        result = MediationResult()

        known: List[DeviceProposal] = []
        for proposal in proposals:
            if proposal.device_id not in world.devices:
                result.logs.append(make_event(
                    world,
                    "action_failed",
                    device_id=proposal.device_id,
                    data={"error": f"Unknown device: {proposal.device_id}"},
                    description=f"Proposal from unknown device {proposal.device_id} skipped",
                ))
                continue
            known.append(proposal)

        for group in self.group_conflicts(known, world):
            if len(group) == 1:
                approved = group[0]
            else:
                resolution = self.resolve_conflict(group, world)
                result.conflicts.append(resolution)
                result.logs.append(self._resolution_event(resolution, world))
                approved = next(p for p in group if p.device_id == resolution.winner)
            for action in approved.step.actions:
                result.actions.append(ApprovedAction(device_id=approved.device_id, action=action))

        # Messages travel regardless of who won; the applicator enforces the allow-list.
        for proposal in known:
            for msg in proposal.step.messages_to:
                result.actions.append(ApprovedAction(
                    device_id=proposal.device_id,
                    action=AgentAction(
                        name="send_message",
                        args={"to": msg.to, "content": msg.content},
                    ),
                ))

        self.apply_rules(result, world)
        self.enforce_quiet_hours(result, world)
        self.enforce_power_limit(result, world)

        logger.debug(
            f"Mediated {len(proposals)} proposals: {len(result.actions)} actions approved, "
            f"{len(result.conflicts)} conflicts resolved"
        )
        return result

    # --- Grouping & resolution ---

    def proposals_conflict(self, a: DeviceProposal, b: DeviceProposal, world: WorldState) -> bool:
        device_a = world.devices.get(a.device_id)
        device_b = world.devices.get(b.device_id)
        if device_a is None or device_b is None or device_a.room != device_b.room:
            return False
        names_a, names_b = _names(a.step), _names(b.step)
        if names_a & TEMPERATURE_ACTIONS and names_b & TEMPERATURE_ACTIONS:
            return True
        if names_a & LIGHTING_ACTIONS and names_b & LIGHTING_ACTIONS:
            return True
        if (
            names_a & HIGH_POWER_ACTIONS
            and names_b & HIGH_POWER_ACTIONS
            and world.resources.power_kw < self.config.low_power_threshold_kw
        ):
            return True
        return False

    def group_conflicts(
        self, proposals: List[DeviceProposal], world: WorldState
    ) -> List[List[DeviceProposal]]:
        """Single pass: each unprocessed proposal collects every later proposal it conflicts with."""
        groups = []
        processed = set()
        for proposal in proposals:
            if proposal.device_id in processed:
                continue
            group = [proposal]
            processed.add(proposal.device_id)
            for other in proposals:
                if other.device_id in processed:
                    continue
                if self.proposals_conflict(proposal, other, world):
                    group.append(other)
                    processed.add(other.device_id)
            groups.append(group)
        return groups

    def _soft_weight(self, soft: Dict[str, float], goal: str) -> float:
        if goal in soft:
            return soft[goal]
        alias = self.config.goal_aliases.get(goal)
        if alias is not None and alias in soft:
            return soft[alias]
        return self.config.default_soft_weight

    def utility(self, device_id: str, world: WorldState) -> float:
        """Utility without the random tie-break term."""
        device = world.devices[device_id]
        soft = world.policies.soft_weights
        score = sum(g.weight * self._soft_weight(soft, g.name) for g in device.spec.goals)
        if any("safe" in g.name for g in device.spec.goals):
            score += self.config.safety_bonus
        room = world.rooms.get(device.room)
        low, high = self.config.safe_band_c
        if room is not None and (room.temperature < low or room.temperature > high):
            score += self.config.out_of_band_bonus
        return score

    def resolve_conflict(self, group: List[DeviceProposal], world: WorldState) -> ConflictResolution:
        scores: Dict[str, float] = {}
        for proposal in group:
            scores[proposal.device_id] = (
                self.utility(proposal.device_id, world)
                + self.rng.next() * self.config.tie_break_scale
            )

        ranked = sorted(group, key=lambda p: scores[p.device_id], reverse=True)
        winner = world.devices[ranked[0].device_id]
        losers = [world.devices[p.device_id] for p in ranked[1:]]

        goals = winner.spec.goals
        top_goal = max(goals, key=lambda g: g.weight).name if goals else "unknown"
        theme = self.config.goal_aliases.get(top_goal, top_goal)
        reason = PRIORITY_MESSAGES.get(theme, f"{top_goal} priority resolved the conflict")
        loser_names = ", ".join(d.spec.name for d in losers)

        logger.info(f"Conflict resolved: {winner.spec.name} over {loser_names}")
        return ConflictResolution(
            winner=winner.id,
            loser=losers[0].id,
            losers=[d.id for d in losers],
            rule_applied=f"{top_goal}_priority",
            utility_scores=scores,
            explanation=f"{winner.spec.name} wins over {loser_names}: {reason}",
        )

    def _resolution_event(self, resolution: ConflictResolution, world: WorldState):
        winner = world.devices[resolution.winner]
        loser = world.devices[resolution.loser]
        return make_event(
            world,
            "conflict_resolution",
            room=winner.room,
            device_id=winner.id,
            data={
                "winner": resolution.winner,
                "loser": resolution.loser,
                "losers": resolution.losers,
                "winner_name": winner.spec.name,
                "loser_name": loser.spec.name,
                "rule": resolution.rule_applied,
                "explanation": resolution.explanation,
                "utility_scores": resolution.utility_scores,
            },
            description=resolution.explanation,
        )

    # --- Governance passes ---

    def apply_rules(self, result: MediationResult, world: WorldState) -> None:
        for pack, rule in active_rules(world.policies.rule_packs):
            if not rule_applies(rule, world):
                continue
            room = rule_room(rule, world)
            stripped = 0

            if rule.hard:
                if rule.then.alarm:
                    result.logs.append(make_event(
                        world,
                        "alarm",
                        room=room,
                        data={"alarm": rule.then.alarm, "rule": rule.id},
                        description=f"ALARM: {rule.explain or rule.then.alarm}",
                    ))
                kept = []
                for approved in result.actions:
                    if action_violates(rule, approved, world):
                        stripped += 1
                        result.logs.append(make_event(
                            world,
                            "hard_rule_block",
                            device_id=approved.device_id,
                            data={"action": approved.action.name, "rule": rule.id},
                            description=f"Rule {rule.id}: {approved.action.name} was blocked",
                        ))
                    else:
                        kept.append(approved)
                result.actions = kept
            else:
                result.logs.append(make_event(
                    world,
                    "soft_rule_applied",
                    room=room,
                    data={
                        "rule": rule.id,
                        "explanation": rule.explain,
                        "action_hint": rule.then.action_hint,
                    },
                    description=rule.explain or f"Soft rule {rule.id} applied",
                ))

            result.rule_firings.append(RuleFiring(
                rule_id=rule.id,
                pack_id=pack.id,
                hard=rule.hard,
                room=room,
                stripped_actions=stripped,
            ))
            result.logs.append(make_event(
                world,
                "rule_fired",
                room=room,
                data={"rule": rule.id, "pack": pack.id, "hard": rule.hard, "stripped": stripped},
                description=f"Rule {rule.id} fired: {rule.explain}" if rule.explain
                else f"Rule {rule.id} fired",
            ))
            logger.debug(f"Rule fired: {rule.id} (hard={rule.hard}, stripped={stripped})")

    def in_quiet_hours(self, world: WorldState) -> bool:
        quiet = world.policies.quiet_hours
        return quiet is not None and in_window(world.time_sec, quiet.start, quiet.end)

    def enforce_quiet_hours(self, result: MediationResult, world: WorldState) -> None:
        if not self.in_quiet_hours(world):
            return
        kept = []
        for approved in result.actions:
            name = approved.action.name
            if name in LOUD_ACTIONS and loud_magnitude(name, approved.action.args) > self.config.loud_threshold:
                result.logs.append(make_event(
                    world,
                    "quiet_hours_block",
                    device_id=approved.device_id,
                    data={"action": name},
                    description=f"Quiet hours: {name} was limited",
                ))
            else:
                kept.append(approved)
        result.actions = kept

    def enforce_power_limit(self, result: MediationResult, world: WorldState) -> None:
        limit = world.policies.limits.get("max_power_kw")
        if limit is None or world.resources.power_draw_kw <= limit:
            return
        kept = []
        for approved in result.actions:
            if approved.action.name in HIGH_POWER_ACTIONS:
                result.logs.append(make_event(
                    world,
                    "power_limit_block",
                    device_id=approved.device_id,
                    data={
                        "action": approved.action.name,
                        "power_draw_kw": world.resources.power_draw_kw,
                        "max_power_kw": limit,
                    },
                    description=f"Power limit: {approved.action.name} was blocked",
                ))
            else:
                kept.append(approved)
        result.actions = kept
