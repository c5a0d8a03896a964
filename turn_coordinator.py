"""
Turn Coordinator - Battle lifecycle, turn order and end conditions
"""

import logging
import time
from random import Random
from typing import Callable, Dict, Optional

from battle_state import (
    BattleResult,
    BattleSession,
    BattleState,
    BattleStatus,
    ResolvedOutcome,
    END_DRAW,
    END_KNOCKOUT,
)
from models import CombatEntity

logger = logging.getLogger(__name__)


class TurnCoordinator:
    """Decides who acts next and when a battle is over"""

    def __init__(self, first_turn: str = "initiator", rng=None,
                 clock: Callable[[], float] = time.time):
        """rng: anything with choice(), such as random.Random or BattleRandom"""
        self.first_turn = first_turn
        self.rng = rng or Random()
        self.clock = clock

    # ========================
    # Battle start
    # ========================

    def choose_first_holder(self, session: BattleSession) -> int:
        if self.first_turn == "participant":
            return session.participant_id
        if self.first_turn == "random":
            return self.rng.choice([session.initiator_id, session.participant_id])
        return session.initiator_id

    def start_battle(self, session: BattleSession, entities: Dict[str, CombatEntity]) -> BattleState:
        """Build the first state document once the opponent has joined"""
        if session.participant_id is None:
            raise ValueError("Cannot start a battle without an opponent")

        max_hp = {}
        for entity_id in session.all_entity_ids():
            max_hp[entity_id] = entities[entity_id].max_hp

        state = BattleState(
            battle_id=session.battle_id,
            current_turn_holder=self.choose_first_holder(session),
            turn_number=0,
            hit_points=dict(max_hp),
            max_hit_points=max_hp,
            status_effects={entity_id: [] for entity_id in max_hp},
            field_modifiers={'weather': session.rules['weather']} if session.rules.get('weather') else {},
            version=0,
            last_action_at=self.clock(),
        )
        logger.debug("Battle %s starts with user %s", session.battle_id, state.current_turn_holder)
        return state

    # ========================
    # Turn advance
    # ========================

    def check_end(self, session: BattleSession, state: BattleState) -> Optional[BattleResult]:
        """Win when exactly one side is out of wines, draw when both are"""
        initiator_alive = state.has_survivors(session.initiator_roster)
        participant_alive = state.has_survivors(session.participant_roster)

        if initiator_alive and participant_alive:
            return None
        if not initiator_alive and not participant_alive:
            return BattleResult(winner_id=None, reason=END_DRAW, decided_at=self.clock())
        winner = session.initiator_id if initiator_alive else session.participant_id
        return BattleResult(winner_id=winner, reason=END_KNOCKOUT, decided_at=self.clock())

    def advance(self, session: BattleSession, state: BattleState,
                outcome: ResolvedOutcome) -> BattleState:
        """
        Apply turn rules to a freshly resolved state (mutated in place and
        returned).

        A forfeit records its result without counting as a turn. Any other
        action consumes the turn; the holder only flips when the battle
        continues.
        """
        if outcome.battle_ended:
            state.result = BattleResult(
                winner_id=outcome.winner_id,
                reason=outcome.end_reason,
                decided_at=self.clock(),
            )
            return state

        state.turn_number += 1

        result = self.check_end(session, state)
        if result is not None:
            state.result = result
            outcome.battle_ended = True
            outcome.winner_id = result.winner_id
            outcome.end_reason = result.reason
            return state

        state.current_turn_holder = session.opponent_of(state.current_turn_holder)
        return state

    # ========================
    # Lifecycle checks
    # ========================

    @staticmethod
    def can_cancel(session: BattleSession, state: Optional[BattleState]) -> bool:
        if session.status == BattleStatus.WAITING:
            return True
        if session.status == BattleStatus.IN_PROGRESS:
            return state is not None and state.turn_number == 0 and state.result is None
        return False

    def is_timed_out(self, state: BattleState, timeout_seconds: Optional[int]) -> bool:
        if not timeout_seconds or state.result is not None:
            return False
        return self.clock() - state.last_action_at >= timeout_seconds
