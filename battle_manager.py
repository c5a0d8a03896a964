"""
Battle Manager - Entry points for creating, playing and settling battles

Nothing is kept in memory between calls: every request loads the battle
from the store, validates, resolves, and commits with a compare-and-swap
on the state version. A request that loses the race gets ConflictError
and has to reload.
"""

import logging
import time
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from battle_config import BattleConfig
from battle_engine import BattleEngine, BattleRandom
from battle_errors import ConflictError, NotFoundError, SettlementError, ValidationError
from battle_state import (
    BATTLE_CATEGORIES,
    DEFAULT_CATEGORY,
    DEFAULT_RULES,
    BattleAction,
    BattleSession,
    BattleSnapshot,
    BattleState,
    BattleStatus,
    ForfeitAction,
    ResolvedOutcome,
    ValidatedAction,
    action_from_dict,
    END_FORFEIT,
    END_TIMEOUT,
)
from battle_store import BattleStore
from battle_validator import ActionValidator
from settlement_handler import SettlementHandler
from turn_coordinator import TurnCoordinator

logger = logging.getLogger(__name__)


class BattleManager:
    """Coordinates validator, engine, turn rules, persistence and settlement"""

    def __init__(self, player_manager, moves_db, type_chart, config: Optional[BattleConfig] = None,
                 rng: Optional[BattleRandom] = None, clock: Callable[[], float] = time.time):
        self.player_manager = player_manager
        self.moves_db = moves_db
        self.config = config or BattleConfig()
        self.clock = clock

        self.store = BattleStore(player_manager.db)
        self.validator = ActionValidator(
            moves_db,
            player_manager.get_entity,
            levels_per_move=self.config.levels_per_move,
            max_moves=self.config.max_moves,
        )
        self.engine = BattleEngine(type_chart, rng=rng, clock=clock)
        self.coordinator = TurnCoordinator(self.config.first_turn, rng=self.engine.rng, clock=clock)
        self.settlement = SettlementHandler(self.store, self.config)

    # ========================
    # Lobby
    # ========================

    def create_battle(self, initiator_id: int, entity_ids: List[str],
                      category: str = DEFAULT_CATEGORY, is_private: bool = False,
                      entry_fee: int = 0, rules: Optional[Dict[str, Any]] = None,
                      challenger_id: Optional[int] = None) -> BattleSession:
        """Open a battle and lock the initiator's roster"""
        self._require_player(initiator_id)
        if category not in BATTLE_CATEGORIES:
            raise ValidationError(f"Unknown battle type '{category}'", ValidationError.MALFORMED_ACTION)
        if entry_fee < 0:
            raise ValidationError("Entry fee cannot be negative", ValidationError.MALFORMED_ACTION)
        if challenger_id is not None and challenger_id == initiator_id:
            raise ValidationError("You can't challenge yourself", ValidationError.MALFORMED_ACTION)

        roster = self._check_roster(initiator_id, entity_ids)

        session = BattleSession(
            battle_id=str(uuid.uuid4()),
            initiator_id=initiator_id,
            category=category,
            initiator_roster=roster,
            challenger_id=challenger_id,
            is_private=is_private,
            entry_fee=entry_fee,
            rules=self._merge_rules(rules),
            created_at=self.clock(),
        )
        self.store.create_session(session)
        logger.info("Battle %s created by %s (%s)", session.battle_id, initiator_id, category)
        return session

    def join_battle(self, battle_id: str, user_id: int,
                    entity_ids: List[str]) -> Tuple[BattleSession, BattleState]:
        """Accept a waiting battle; the battle starts immediately"""
        session, _ = self.store.load(battle_id)
        if session.status != BattleStatus.WAITING:
            raise ValidationError("This battle is no longer open", ValidationError.BATTLE_NOT_IN_PROGRESS)
        if user_id == session.initiator_id:
            raise ValidationError("You can't join your own battle", ValidationError.MALFORMED_ACTION)
        if session.challenger_id is not None and session.challenger_id != user_id:
            raise ValidationError("This battle is reserved for another player", ValidationError.NOT_PARTICIPANT)

        self._require_player(user_id)
        roster = self._check_roster(user_id, entity_ids)

        session.participant_id = user_id
        session.participant_roster = roster
        session.status = BattleStatus.IN_PROGRESS
        session.started_at = self.clock()

        entities = self.player_manager.get_entities(session.all_entity_ids())
        state = self.coordinator.start_battle(session, entities)
        self.store.start_session(session, state)

        logger.info("Battle %s started: %s vs %s", battle_id, session.initiator_id, user_id)
        return session, state

    def cancel_battle(self, battle_id: str, user_id: int, is_admin: bool = False) -> BattleSession:
        """
        Cancel a battle that has not really begun. Admins may cancel until the
        first turn is taken; an initiator only while nobody has joined.
        """
        session, state = self.store.load(battle_id)
        if not self.coordinator.can_cancel(session, state):
            raise ValidationError("This battle can no longer be cancelled", ValidationError.BATTLE_NOT_IN_PROGRESS)
        if not is_admin and not (session.status == BattleStatus.WAITING and user_id == session.initiator_id):
            raise ValidationError("Only the initiator can cancel this battle", ValidationError.NOT_PARTICIPANT)

        self.store.cancel_session(
            battle_id,
            expected_status=session.status,
            expected_version=state.version if state else None,
            ended_at=self.clock(),
        )
        logger.info("Battle %s cancelled by %s", battle_id, user_id)
        session, _ = self.store.load(battle_id)
        return session

    def list_battles(self, statuses: Optional[Iterable[BattleStatus]] = None,
                     user_id: Optional[int] = None, limit: int = 25) -> List[BattleSession]:
        """
        Public battles, or every battle of `user_id` (private ones included)
        when a user is given.
        """
        if user_id is not None:
            return self.store.list_sessions(statuses, user_id=user_id, limit=limit)
        return self.store.list_sessions(statuses, include_private=False, limit=limit)

    # ========================
    # Turns
    # ========================

    def submit_action(self, battle_id: str, user_id: int,
                      action: Union[BattleAction, Dict[str, Any]]) -> ResolvedOutcome:
        """
        Validate and resolve one action, then commit it.

        Raises ValidationError (nothing changed), ConflictError (someone
        else committed first), NotFoundError, or SettlementError when the
        battle ended but could not be paid out yet.
        """
        if isinstance(action, dict):
            action = action_from_dict(action)

        session, state = self._load(battle_id)
        validated = self.validator.validate(session, state, user_id, action)
        return self._apply(session, state, validated)

    def forfeit_battle(self, battle_id: str, user_id: int) -> ResolvedOutcome:
        """
        Leave a battle. Either participant may forfeit at any time; the
        initiator of a battle nobody joined simply cancels it.
        """
        session, state = self._load(battle_id)
        if not session.is_participant(user_id):
            raise ValidationError("You are not in this battle", ValidationError.NOT_PARTICIPANT)

        if session.status == BattleStatus.WAITING:
            self.store.cancel_session(battle_id, expected_status=BattleStatus.WAITING, ended_at=self.clock())
            logger.info("Battle %s withdrawn by %s", battle_id, user_id)
            return ResolvedOutcome(
                kind=ForfeitAction.kind.value,
                actor_id=user_id,
                message="Battle cancelled",
                battle_ended=True,
            )

        if session.status != BattleStatus.IN_PROGRESS or state is None or state.result is not None:
            raise ValidationError("This battle is not in progress", ValidationError.BATTLE_NOT_IN_PROGRESS)

        return self._force_forfeit(session, state, user_id, END_FORFEIT)

    def enforce_turn_timeout(self, battle_id: str) -> Optional[ResolvedOutcome]:
        """
        Forfeit for a turn holder who has been idle longer than
        turn_timeout_seconds. Returns None when nothing was due.
        """
        session, state = self._load(battle_id)
        if session.status != BattleStatus.IN_PROGRESS or state is None:
            return None
        if not self.coordinator.is_timed_out(state, self.config.turn_timeout_seconds):
            return None

        logger.info("Battle %s: user %s timed out", battle_id, state.current_turn_holder)
        return self._force_forfeit(session, state, state.current_turn_holder, END_TIMEOUT)

    def enforce_turn_timeouts(self) -> List[ResolvedOutcome]:
        """Sweep every running battle for idle turn holders"""
        if not self.config.turn_timeout_seconds:
            return []

        outcomes = []
        for session in self.store.list_sessions([BattleStatus.IN_PROGRESS], limit=None):
            try:
                outcome = self.enforce_turn_timeout(session.battle_id)
            except (ConflictError, SettlementError):
                logger.warning("Timeout check for battle %s skipped", session.battle_id, exc_info=True)
                continue
            if outcome:
                outcomes.append(outcome)
        return outcomes

    # ========================
    # Reads
    # ========================

    def get_snapshot(self, battle_id: str, user_id: int) -> BattleSnapshot:
        """
        Current view of a battle. Private battles are only visible to their
        participants; available actions are only listed for the turn holder.
        """
        session, state = self._load(battle_id, settle_quietly=True)
        is_participant = session.is_participant(user_id)
        if session.is_private and not is_participant:
            raise ValidationError("This battle is private", ValidationError.NOT_PARTICIPANT)

        available = {}
        if (session.status == BattleStatus.IN_PROGRESS and state is not None
                and state.result is None and state.current_turn_holder == user_id):
            available = self.available_actions(session, state, user_id)

        return BattleSnapshot(
            session=session,
            state=state,
            available_actions=available,
            is_participant=is_participant,
        )

    def available_actions(self, session: BattleSession, state: BattleState, user_id: int) -> Dict[str, Any]:
        opponent_id = session.opponent_of(user_id)
        own = [eid for eid in session.roster_of(user_id) if not state.is_fainted(eid)]
        targets = [eid for eid in session.roster_of(opponent_id) if not state.is_fainted(eid)]

        entities = {}
        for entity_id in own:
            entity = self.player_manager.get_entity(entity_id)
            entities[entity_id] = {
                'name': entity.name,
                'category': entity.category,
                'moves': self.validator.known_moves(entity),
                'ability': entity.ability if session.rule_enabled('abilities') else None,
                'switch_to': [eid for eid in own if eid != entity_id],
            }

        return {
            'entities': entities,
            'targets': targets,
            'can_forfeit': True,
        }

    # ========================
    # Settlement
    # ========================

    def retry_settlement(self, battle_id: str) -> bool:
        """Settle a battle whose result is decided but not yet paid out"""
        session, state = self.store.load(battle_id)
        if session.status != BattleStatus.IN_PROGRESS or state is None or state.result is None:
            return False
        return self.settlement.settle(session, state.result)

    def retry_pending_settlements(self) -> int:
        settled = 0
        for session in self.store.list_sessions([BattleStatus.IN_PROGRESS], limit=None):
            try:
                if self.retry_settlement(session.battle_id):
                    settled += 1
            except SettlementError:
                continue
        return settled

    # ========================
    # Internals
    # ========================

    def _load(self, battle_id: str, settle_quietly: bool = False) -> Tuple[BattleSession, Optional[BattleState]]:
        """Load a battle, finishing any settlement a previous request left pending"""
        session, state = self.store.load(battle_id)
        if session.status == BattleStatus.IN_PROGRESS and state is not None and state.result is not None:
            try:
                self.settlement.settle(session, state.result)
            except SettlementError:
                if not settle_quietly:
                    raise
            else:
                session, state = self.store.load(battle_id)
        return session, state

    def _force_forfeit(self, session: BattleSession, state: BattleState,
                       user_id: int, reason: str) -> ResolvedOutcome:
        validated = ValidatedAction(
            action=ForfeitAction(reason=reason),
            actor_id=user_id,
            opponent_id=session.opponent_of(user_id),
        )
        return self._apply(session, state, validated)

    def _apply(self, session: BattleSession, state: BattleState,
               validated: ValidatedAction) -> ResolvedOutcome:
        outcome, new_state = self.engine.resolve(validated, state, session)
        self.coordinator.advance(session, new_state, outcome)
        self.store.commit(session.battle_id, new_state)

        if new_state.result is not None:
            logger.info(
                "Battle %s decided: winner=%s reason=%s",
                session.battle_id, new_state.result.winner_id, new_state.result.reason,
            )
            self.settlement.settle(session, new_state.result)
        return outcome

    def _require_player(self, user_id: int):
        if not self.player_manager.player_exists(user_id):
            raise NotFoundError(f"Player {user_id} is not registered")

    def _check_roster(self, owner_id: int, entity_ids: List[str]) -> List[str]:
        roster = list(entity_ids or [])
        if not self.config.min_roster_size <= len(roster) <= self.config.max_roster_size:
            raise ValidationError(
                f"Choose {self.config.min_roster_size}-{self.config.max_roster_size} wines",
                ValidationError.MALFORMED_ACTION,
            )
        if len(set(roster)) != len(roster):
            raise ValidationError("A wine can only be chosen once", ValidationError.MALFORMED_ACTION)

        for entity in self.player_manager.get_entities(roster).values():
            if entity.owner_id != owner_id:
                raise ValidationError(f"{entity.name} is not in your collection", ValidationError.ENTITY_NOT_OWNED)
            if not entity.is_available:
                raise ValidationError(f"{entity.name} is already committed", ValidationError.ENTITY_NOT_OWNED)
        return roster

    @staticmethod
    def _merge_rules(rules: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        merged = dict(DEFAULT_RULES)
        for key, value in (rules or {}).items():
            if key not in DEFAULT_RULES:
                raise ValidationError(f"Unknown battle rule '{key}'", ValidationError.MALFORMED_ACTION)
            merged[key] = value
        return merged
