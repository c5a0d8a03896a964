"""
Battle Engine - Resolves validated actions into outcomes

Resolution is a pure step: it takes the current BattleState, works on a
copy and returns the outcome together with the new state. Nothing here
touches the database; the BattleManager commits the result.
"""

import logging
import math
import time
from random import Random
from typing import Callable, Dict, Optional, Tuple

from battle_state import (
    AbilityAction,
    BattleSession,
    BattleState,
    ForfeitAction,
    ItemAction,
    LogEntry,
    MoveAction,
    ResolvedOutcome,
    SwitchAction,
    ValidatedAction,
    END_FORFEIT,
)
from models import CombatEntity, Move

logger = logging.getLogger(__name__)

BASE_CRIT_CHANCE = 1 / 16
HIGH_CRIT_CHANCE = 1 / 4
CRIT_MULTIPLIER = 1.5
MIN_RANDOM_FACTOR = 0.85
MAX_RANDOM_FACTOR = 1.0

EffectHandler = Callable[[ValidatedAction, BattleState], Optional[str]]


class BattleRandom:
    """
    Every random draw the engine makes. Seed it for reproducible battles,
    or subclass it in tests to force specific rolls.
    """

    def __init__(self, seed: Optional[int] = None):
        self._random = Random(seed)

    def accuracy_roll(self) -> float:
        """Uniform on [0, 100)"""
        return self._random.random() * 100

    def critical_roll(self) -> float:
        """Uniform on [0, 1); a hit is critical when below the crit chance"""
        return self._random.random()

    def damage_variance(self) -> float:
        """Uniform on [0.85, 1.0]"""
        return self._random.uniform(MIN_RANDOM_FACTOR, MAX_RANDOM_FACTOR)

    def choice(self, options):
        return self._random.choice(options)


class DamageCalculator:
    """Wine damage formula with type effectiveness and critical hits"""

    def __init__(self, type_chart, rng: BattleRandom):
        self.type_chart = type_chart
        self.rng = rng

    @staticmethod
    def base_damage(level: int, offense: int, defense: int, power: int) -> int:
        return math.floor(((2 * level + 10) / 250) * (offense / max(1, defense)) * power + 2)

    def effectiveness(self, move: Move, defender: CombatEntity, use_chart: bool = True) -> float:
        if not use_chart:
            return 1.0
        return self.type_chart.get_effectiveness(move.category, defender.category)

    def critical_chance(self, move: Move) -> float:
        if 'critical' in (move.effect or '').lower():
            return HIGH_CRIT_CHANCE
        return BASE_CRIT_CHANCE

    def calculate(self, attacker: CombatEntity, defender: CombatEntity, move: Move,
                  use_chart: bool = True, allow_critical: bool = True) -> Tuple[int, float, bool]:
        """
        Returns (damage, effectiveness, critical). Damage is always at
        least 1 for a damaging move that hit.
        """
        base = self.base_damage(attacker.level, attacker.offense, defender.defense, move.power)
        effectiveness = self.effectiveness(move, defender, use_chart)

        # Drawn even when crits are disabled so the roll sequence stays stable
        crit_roll = self.rng.critical_roll()
        critical = allow_critical and crit_roll < self.critical_chance(move)

        modifier = effectiveness * (CRIT_MULTIPLIER if critical else 1.0)
        modifier *= self.rng.damage_variance()

        damage = max(1, math.floor(base * modifier))
        return damage, effectiveness, critical


class BattleEngine:
    """
    Resolution engine for validated actions.

    Abilities and items only describe themselves by default. Register a
    handler with register_ability_effect / register_item_effect to give one
    a real effect; a handler may change the working state and return an
    extra message.
    """

    def __init__(self, type_chart, rng: Optional[BattleRandom] = None,
                 clock: Callable[[], float] = time.time):
        self.rng = rng or BattleRandom()
        self.calculator = DamageCalculator(type_chart, self.rng)
        self.clock = clock
        self.ability_effects: Dict[str, EffectHandler] = {}
        self.item_effects: Dict[str, EffectHandler] = {}

    def register_ability_effect(self, ability: str, handler: EffectHandler):
        self.ability_effects[ability.lower()] = handler

    def register_item_effect(self, item: str, handler: EffectHandler):
        self.item_effects[item.lower()] = handler

    def resolve(self, validated: ValidatedAction, state: BattleState,
                session: BattleSession) -> Tuple[ResolvedOutcome, BattleState]:
        """Resolve one action against a copy of the state"""
        working = state.next_version()
        action = validated.action

        if isinstance(action, MoveAction):
            outcome = self._execute_move(validated, working, session)
        elif isinstance(action, AbilityAction):
            outcome = self._execute_ability(validated, working)
        elif isinstance(action, ItemAction):
            outcome = self._execute_item(validated, working)
        elif isinstance(action, SwitchAction):
            outcome = self._execute_switch(validated, working)
        elif isinstance(action, ForfeitAction):
            outcome = self._execute_forfeit(validated)
        else:
            raise TypeError(f"Unhandled action type {type(action).__name__}")

        now = self.clock()
        working.log.append(LogEntry(
            turn=state.turn_number + 1,
            actor_id=validated.actor_id,
            action=action.kind.value,
            outcome=outcome.to_dict(),
            timestamp=now,
        ))
        working.last_action_at = now
        return outcome, working

    # ========================
    # Action handlers
    # ========================

    def _execute_move(self, validated: ValidatedAction, state: BattleState,
                      session: BattleSession) -> ResolvedOutcome:
        attacker: CombatEntity = validated.actor
        move: Move = validated.move
        outcome = ResolvedOutcome(
            kind=validated.kind.value,
            actor_id=validated.actor_id,
            entity_id=attacker.entity_id,
            move_id=move.move_id,
            message='',
        )

        # A miss still uses up the turn
        roll = self.rng.accuracy_roll()
        if roll > move.accuracy:
            outcome.missed = True
            outcome.message = f"{attacker.name} used {move.name}, but it missed!"
            return outcome

        defender: Optional[CombatEntity] = validated.target
        if not move.is_damaging or defender is None:
            outcome.message = f"{attacker.name} used {move.name}!"
            if move.effect:
                outcome.message += f" {move.effect}."
            return outcome

        damage, effectiveness, critical = self.calculator.calculate(
            attacker,
            defender,
            move,
            use_chart=session.rule_enabled('type_effectiveness'),
            allow_critical=session.rule_enabled('critical_hits'),
        )
        remaining = state.set_hp(defender.entity_id, state.current_hp(defender.entity_id) - damage)

        outcome.target_id = defender.entity_id
        outcome.damage = damage
        outcome.effectiveness = effectiveness
        outcome.critical = critical
        outcome.fainted = remaining == 0

        message = f"{attacker.name} used {move.name} on {defender.name}! "
        if effectiveness > 1:
            message += "It's super effective! "
        elif 0 < effectiveness < 1:
            message += "It's not very effective... "
        elif effectiveness == 0:
            message += "It barely had an effect... "
        if critical:
            message += "A critical hit! "
        message += f"Dealt {damage} damage."
        if outcome.fainted:
            message += f" {defender.name} fainted!"
        outcome.message = message

        logger.debug(
            "Battle %s: %s hit %s for %s (eff=%s crit=%s)",
            state.battle_id, attacker.entity_id, defender.entity_id, damage, effectiveness, critical,
        )
        return outcome

    def _execute_ability(self, validated: ValidatedAction, state: BattleState) -> ResolvedOutcome:
        actor: CombatEntity = validated.actor
        ability = validated.action.ability or actor.ability or 'its ability'
        message = f"{actor.name} used ability {ability}!"

        handler = self.ability_effects.get(str(ability).lower())
        if handler:
            extra = handler(validated, state)
            if extra:
                message += f" {extra}"

        return ResolvedOutcome(
            kind=validated.kind.value,
            actor_id=validated.actor_id,
            entity_id=actor.entity_id,
            message=message,
        )

    def _execute_item(self, validated: ValidatedAction, state: BattleState) -> ResolvedOutcome:
        target: CombatEntity = validated.target
        item = validated.action.item
        message = f"Used {item} on {target.name}!"

        handler = self.item_effects.get(item.lower())
        if handler:
            extra = handler(validated, state)
            if extra:
                message += f" {extra}"

        return ResolvedOutcome(
            kind=validated.kind.value,
            actor_id=validated.actor_id,
            entity_id=validated.actor.entity_id,
            target_id=target.entity_id,
            message=message,
        )

    def _execute_switch(self, validated: ValidatedAction, state: BattleState) -> ResolvedOutcome:
        incoming: CombatEntity = validated.target
        return ResolvedOutcome(
            kind=validated.kind.value,
            actor_id=validated.actor_id,
            entity_id=validated.actor.entity_id,
            target_id=incoming.entity_id,
            message=f"Switched to {incoming.name}!",
        )

    def _execute_forfeit(self, validated: ValidatedAction) -> ResolvedOutcome:
        reason = validated.action.reason
        message = "Battle forfeited" if reason == END_FORFEIT else f"Battle forfeited ({reason})"
        return ResolvedOutcome(
            kind=validated.kind.value,
            actor_id=validated.actor_id,
            message=message,
            battle_ended=True,
            winner_id=validated.opponent_id,
            end_reason=reason,
        )
