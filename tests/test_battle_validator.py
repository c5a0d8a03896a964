import pytest

from battle_errors import NotFoundError, ValidationError
from battle_state import (
    AbilityAction,
    BattleSession,
    BattleState,
    BattleStatus,
    BattleResult,
    ForfeitAction,
    ItemAction,
    MoveAction,
    SwitchAction,
    action_from_dict,
)
from battle_validator import ActionValidator
from models import CombatEntity

ENTITIES = {
    "a1": CombatEntity("a1", 1, "Barolo", "Terroir", level=30, stats={"power": 80, "elegance": 50},
                       ability="Earthy Depth"),
    "a2": CombatEntity("a2", 1, "Chianti", "Varietal", level=5, stats={"power": 60, "elegance": 40}),
    "b1": CombatEntity("b1", 2, "Rioja", "Heritage", level=20, stats={"power": 70, "elegance": 60}),
    "b2": CombatEntity("b2", 2, "Tempranillo", "Heritage", level=20, stats={"power": 70, "elegance": 60}),
}


def lookup(entity_id):
    if entity_id not in ENTITIES:
        raise NotFoundError(f"Wine {entity_id} not found")
    return ENTITIES[entity_id]


@pytest.fixture
def validator(moves_db):
    return ActionValidator(moves_db, lookup)


@pytest.fixture
def session():
    return BattleSession(
        battle_id="battle-1",
        initiator_id=1,
        participant_id=2,
        category="TerroirChallenge",
        initiator_roster=["a1", "a2"],
        participant_roster=["b1", "b2"],
        status=BattleStatus.IN_PROGRESS,
    )


@pytest.fixture
def state():
    return BattleState(
        battle_id="battle-1",
        current_turn_holder=1,
        hit_points={"a1": 130, "a2": 100, "b1": 130, "b2": 0},
        max_hit_points={"a1": 130, "a2": 100, "b1": 130, "b2": 130},
    )


def assert_rejected(kind, func, *args):
    with pytest.raises(ValidationError) as excinfo:
        func(*args)
    assert excinfo.value.kind == kind


def test_valid_move_resolves_actor_target_and_move(validator, session, state):
    validated = validator.validate(session, state, 1, MoveAction("a1", "terroir_surge", "b1"))

    assert validated.actor.entity_id == "a1"
    assert validated.target.entity_id == "b1"
    assert validated.move.move_id == "terroir_surge"
    assert validated.opponent_id == 2


def test_move_can_be_named_by_display_name(validator, session, state):
    validated = validator.validate(session, state, 1, MoveAction("a1", "Terroir Surge", "b1"))
    assert validated.move.move_id == "terroir_surge"


def test_non_turn_holder_is_rejected(validator, session, state):
    assert_rejected(ValidationError.NOT_YOUR_TURN, validator.validate,
                    session, state, 2, MoveAction("b1", "basic_strike", "a1"))


def test_outsider_is_rejected(validator, session, state):
    assert_rejected(ValidationError.NOT_PARTICIPANT, validator.validate,
                    session, state, 99, ForfeitAction())


def test_battle_must_be_in_progress(validator, session, state):
    session.status = BattleStatus.WAITING
    assert_rejected(ValidationError.BATTLE_NOT_IN_PROGRESS, validator.validate,
                    session, None, 1, ForfeitAction())


def test_decided_battle_rejects_further_actions(validator, session, state):
    state.result = BattleResult(winner_id=1, reason="knockout", decided_at=0.0)
    assert_rejected(ValidationError.BATTLE_NOT_IN_PROGRESS, validator.validate,
                    session, state, 1, MoveAction("a1", "basic_strike", "b1"))


def test_acting_with_opponent_wine_is_rejected(validator, session, state):
    assert_rejected(ValidationError.ENTITY_NOT_OWNED, validator.validate,
                    session, state, 1, MoveAction("b1", "basic_strike", "a1"))


def test_fainted_actor_is_rejected(validator, session, state):
    state.hit_points["a1"] = 0
    assert_rejected(ValidationError.MALFORMED_ACTION, validator.validate,
                    session, state, 1, MoveAction("a1", "basic_strike", "b1"))


def test_damaging_move_needs_live_opposing_target(validator, session, state):
    assert_rejected(ValidationError.MALFORMED_ACTION, validator.validate,
                    session, state, 1, MoveAction("a1", "basic_strike"))
    assert_rejected(ValidationError.MALFORMED_ACTION, validator.validate,
                    session, state, 1, MoveAction("a1", "basic_strike", "a2"))
    assert_rejected(ValidationError.MALFORMED_ACTION, validator.validate,
                    session, state, 1, MoveAction("a1", "basic_strike", "b2"))


def test_unknown_or_unlearned_moves_are_rejected(validator, session, state):
    assert_rejected(ValidationError.MALFORMED_ACTION, validator.validate,
                    session, state, 1, MoveAction("a1", "no_such_move", "b1"))
    # Level 5 Chianti only knows Basic Strike
    assert_rejected(ValidationError.MALFORMED_ACTION, validator.validate,
                    session, state, 1, MoveAction("a2", "grape_burst", "b1"))


def test_known_moves_grow_with_level(validator):
    assert validator.known_moves(ENTITIES["a2"]) == ["basic_strike"]
    assert validator.known_moves(ENTITIES["a1"]) == ["basic_strike", "terroir_surge", "limestone_crush"]


def test_switch_rules(validator, session, state):
    validated = validator.validate(session, state, 1, SwitchAction("a1", "a2"))
    assert validated.target.entity_id == "a2"

    assert_rejected(ValidationError.MALFORMED_ACTION, validator.validate,
                    session, state, 1, SwitchAction("a1", "a1"))
    assert_rejected(ValidationError.ENTITY_NOT_OWNED, validator.validate,
                    session, state, 1, SwitchAction("a1", "b1"))


def test_ability_must_match_the_wine(validator, session, state):
    assert validator.validate(session, state, 1, AbilityAction("a1")).actor.entity_id == "a1"
    assert_rejected(ValidationError.MALFORMED_ACTION, validator.validate,
                    session, state, 1, AbilityAction("a1", "Something Else"))


def test_abilities_rule_off_rejects_abilities(validator, session, state):
    session.rules["abilities"] = False
    assert_rejected(ValidationError.MALFORMED_ACTION, validator.validate,
                    session, state, 1, AbilityAction("a1"))


def test_item_needs_a_name_and_own_target(validator, session, state):
    assert validator.validate(session, state, 1, ItemAction("a1", "Decanter")).target.entity_id == "a1"
    assert_rejected(ValidationError.MALFORMED_ACTION, validator.validate,
                    session, state, 1, ItemAction("a1", ""))
    assert_rejected(ValidationError.ENTITY_NOT_OWNED, validator.validate,
                    session, state, 1, ItemAction("a1", "Decanter", "b1"))


def test_validation_does_not_touch_state(validator, session, state):
    before = state.to_dict()
    with pytest.raises(ValidationError):
        validator.validate(session, state, 2, MoveAction("b1", "basic_strike", "a1"))
    assert state.to_dict() == before


def test_payload_parsing():
    action = action_from_dict({"action": "move", "entity_id": "a1", "move_id": "basic_strike", "target_id": "b1"})
    assert action == MoveAction("a1", "basic_strike", "b1")
    assert action_from_dict({"action": "FORFEIT"}) == ForfeitAction()

    for payload in ({"action": "dance", "entity_id": "a1"}, {"action": "move"},
                    {"action": "move", "entity_id": "a1"}, "move"):
        with pytest.raises(ValidationError) as excinfo:
            action_from_dict(payload)
        assert excinfo.value.kind == ValidationError.MALFORMED_ACTION


def test_player_forfeit_cannot_choose_its_end_reason(validator, session, state):
    assert validator.validate(session, state, 1, ForfeitAction()).opponent_id == 2
    for reason in ("draw", "timeout", "knockout"):
        assert_rejected(ValidationError.MALFORMED_ACTION, validator.validate,
                        session, state, 1, ForfeitAction(reason=reason))


def test_payload_fields_must_be_strings():
    base = {"action": "move", "entity_id": "a1", "move_id": "basic_strike", "target_id": "b1"}
    for payload in (
        dict(base, move_id=7),
        dict(base, entity_id=5),
        dict(base, target_id=["b1"]),
        {"action": "item", "entity_id": "a1", "item": 3},
        {"action": "switch", "entity_id": "a1", "switch_to": 1},
        {"action": "ability", "entity_id": "a1", "ability": {"name": "x"}},
    ):
        with pytest.raises(ValidationError) as excinfo:
            action_from_dict(payload)
        assert excinfo.value.kind == ValidationError.MALFORMED_ACTION
