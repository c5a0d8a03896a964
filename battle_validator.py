"""
Action Validator - Checks a submitted action before anything is changed

Validation only reads: the session, the current state document, the move
catalog and the roster lookup. Every rejection is a ValidationError whose
kind tells the request layer what went wrong.
"""

from typing import Callable, List, Optional

from battle_errors import ValidationError
from battle_state import (
    AbilityAction,
    BattleAction,
    BattleSession,
    BattleState,
    BattleStatus,
    ForfeitAction,
    ItemAction,
    MoveAction,
    SwitchAction,
    ValidatedAction,
    END_FORFEIT,
)
from models import CombatEntity, learnable_move_ids


class ActionValidator:
    """Validates actions against turn ownership, rosters and move legality"""

    def __init__(self, moves_db, entity_lookup: Callable[[str], CombatEntity],
                 levels_per_move: int = 15, max_moves: int = 4):
        """
        Args:
            moves_db: MovesDatabase instance
            entity_lookup: roster lookup, raises NotFoundError for unknown wines
        """
        self.moves_db = moves_db
        self.entity_lookup = entity_lookup
        self.levels_per_move = levels_per_move
        self.max_moves = max_moves

    def known_moves(self, entity: CombatEntity) -> List[str]:
        return learnable_move_ids(
            entity,
            self.moves_db.get_moves_by_category(entity.category),
            max_moves=self.max_moves,
            levels_per_move=self.levels_per_move,
        )

    def validate(self, session: BattleSession, state: Optional[BattleState],
                 acting_user_id: int, action: BattleAction) -> ValidatedAction:
        self._check_battle(session, state, acting_user_id)

        opponent_id = session.opponent_of(acting_user_id)

        if isinstance(action, ForfeitAction):
            # Timeouts are issued by the manager, never submitted by a player
            if action.reason != END_FORFEIT:
                raise ValidationError(
                    f"Unknown forfeit reason '{action.reason}'", ValidationError.MALFORMED_ACTION
                )
            return ValidatedAction(action=action, actor_id=acting_user_id, opponent_id=opponent_id)

        actor = self._check_actor(session, state, acting_user_id, action.entity_id)

        if isinstance(action, MoveAction):
            return self._validate_move(session, state, acting_user_id, opponent_id, actor, action)
        if isinstance(action, AbilityAction):
            if not session.rule_enabled('abilities'):
                raise ValidationError("Abilities are disabled in this battle", ValidationError.MALFORMED_ACTION)
            if action.ability and actor.ability and action.ability.lower() != actor.ability.lower():
                raise ValidationError(
                    f"{actor.name} does not have the ability {action.ability}",
                    ValidationError.MALFORMED_ACTION,
                )
            return ValidatedAction(action=action, actor_id=acting_user_id,
                                   opponent_id=opponent_id, actor=actor)
        if isinstance(action, ItemAction):
            if not action.item:
                raise ValidationError("An item is required", ValidationError.MALFORMED_ACTION)
            target = actor
            if action.target_id and action.target_id != actor.entity_id:
                target = self._check_own_entity(session, state, acting_user_id, action.target_id)
            return ValidatedAction(action=action, actor_id=acting_user_id,
                                   opponent_id=opponent_id, actor=actor, target=target)
        if isinstance(action, SwitchAction):
            if not action.switch_to or action.switch_to == actor.entity_id:
                raise ValidationError("Switch to a different wine", ValidationError.MALFORMED_ACTION)
            target = self._check_own_entity(session, state, acting_user_id, action.switch_to)
            return ValidatedAction(action=action, actor_id=acting_user_id,
                                   opponent_id=opponent_id, actor=actor, target=target)

        raise ValidationError(f"Unsupported action {action!r}", ValidationError.MALFORMED_ACTION)

    # ------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------
    def _check_battle(self, session: BattleSession, state: Optional[BattleState], acting_user_id: int):
        if not session.is_participant(acting_user_id):
            raise ValidationError("You are not in this battle", ValidationError.NOT_PARTICIPANT)
        if session.status != BattleStatus.IN_PROGRESS or state is None or state.result is not None:
            raise ValidationError("This battle is not in progress", ValidationError.BATTLE_NOT_IN_PROGRESS)
        if state.current_turn_holder != acting_user_id:
            raise ValidationError("It's not your turn", ValidationError.NOT_YOUR_TURN)

    def _check_own_entity(self, session: BattleSession, state: BattleState,
                          acting_user_id: int, entity_id: str) -> CombatEntity:
        if not entity_id or entity_id not in session.roster_of(acting_user_id):
            raise ValidationError("That wine is not on your team", ValidationError.ENTITY_NOT_OWNED)
        entity = self.entity_lookup(entity_id)
        if state.is_fainted(entity_id):
            raise ValidationError(f"{entity.name} has fainted", ValidationError.MALFORMED_ACTION)
        return entity

    def _check_actor(self, session: BattleSession, state: BattleState,
                     acting_user_id: int, entity_id: Optional[str]) -> CombatEntity:
        if not entity_id:
            raise ValidationError("An acting wine is required", ValidationError.MALFORMED_ACTION)
        return self._check_own_entity(session, state, acting_user_id, entity_id)

    def _validate_move(self, session: BattleSession, state: BattleState, acting_user_id: int,
                       opponent_id: int, actor: CombatEntity, action: MoveAction) -> ValidatedAction:
        move = self.moves_db.get_move(action.move_id)
        if move is None:
            raise ValidationError(f"Unknown move '{action.move_id}'", ValidationError.MALFORMED_ACTION)
        if move.move_id not in self.known_moves(actor):
            raise ValidationError(f"{actor.name} doesn't know {move.name}", ValidationError.MALFORMED_ACTION)

        target = None
        if move.is_damaging:
            if not action.target_id:
                raise ValidationError(f"{move.name} needs a target", ValidationError.MALFORMED_ACTION)
            if action.target_id not in session.roster_of(opponent_id):
                raise ValidationError("Target must be an opposing wine", ValidationError.MALFORMED_ACTION)
            if state.is_fainted(action.target_id):
                raise ValidationError("That wine has already fainted", ValidationError.MALFORMED_ACTION)
            target = self.entity_lookup(action.target_id)

        return ValidatedAction(action=action, actor_id=acting_user_id, opponent_id=opponent_id,
                               actor=actor, target=target, move=move)
