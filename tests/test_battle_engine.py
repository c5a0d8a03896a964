from battle_engine import BattleEngine
from battle_state import (
    AbilityAction,
    BattleSession,
    BattleState,
    BattleStatus,
    ForfeitAction,
    ItemAction,
    MoveAction,
    SwitchAction,
    ValidatedAction,
)
from models import CombatEntity, Move

from conftest import FakeClock, FixedRandom

SURGE = Move("terroir_surge", "Terroir Surge", "Terroir", power=80, accuracy=100)
CRUSH = Move("limestone_crush", "Limestone Crush", "Terroir", power=95, accuracy=90)
ROOTS = Move("deep_roots", "Deep Roots", "Terroir", power=0, effect="Raises elegance")


def wine(entity_id, owner_id, name, hp_stats=None, **kwargs):
    stats = {"power": 80, "elegance": 50}
    stats.update(hp_stats or {})
    return CombatEntity(entity_id=entity_id, owner_id=owner_id, name=name, category="Terroir",
                        level=15, stats=stats, ability="Earthy Depth", **kwargs)


ATTACKER = wine("a1", 1, "Barolo")
SPARE = wine("a2", 1, "Chianti")
DEFENDER = wine("b1", 2, "Rioja")


def make_session(**rules):
    return BattleSession(
        battle_id="battle-1",
        initiator_id=1,
        participant_id=2,
        category="TerroirChallenge",
        initiator_roster=["a1", "a2"],
        participant_roster=["b1"],
        status=BattleStatus.IN_PROGRESS,
        rules=rules,
    )


def make_state(defender_hp=130):
    return BattleState(
        battle_id="battle-1",
        current_turn_holder=1,
        hit_points={"a1": 130, "a2": 130, "b1": defender_hp},
        max_hit_points={"a1": 130, "a2": 130, "b1": 130},
    )


def make_engine(**rolls):
    return BattleEngine(type_chart=None, rng=FixedRandom(**rolls), clock=FakeClock(500.0))


def move_action(move, target="b1"):
    return ValidatedAction(
        action=MoveAction("a1", move.move_id, target),
        actor_id=1,
        opponent_id=2,
        actor=ATTACKER,
        target=DEFENDER if target else None,
        move=move,
    )


class StubChart:
    def get_effectiveness(self, attacking, defending):
        return 1.0


def test_hit_reduces_target_hp_without_touching_input_state():
    engine = BattleEngine(StubChart(), rng=FixedRandom(), clock=FakeClock(500.0))
    state = make_state()

    outcome, new_state = engine.resolve(move_action(SURGE), state, make_session())

    assert outcome.damage == 22
    assert outcome.missed is False
    assert new_state.hit_points["b1"] == 108
    assert state.hit_points["b1"] == 130
    assert state.log == []
    assert new_state.version == state.version + 1


def test_miss_consumes_action_without_damage():
    # accuracy 90, roll 95
    engine = BattleEngine(StubChart(), rng=FixedRandom(accuracy=95.0), clock=FakeClock(500.0))
    state = make_state()

    outcome, new_state = engine.resolve(move_action(CRUSH), state, make_session())

    assert outcome.missed is True
    assert outcome.damage == 0
    assert new_state.hit_points == state.hit_points
    assert len(new_state.log) == 1
    assert new_state.log[0].outcome["missed"] is True


def test_roll_equal_to_accuracy_still_hits():
    engine = BattleEngine(StubChart(), rng=FixedRandom(accuracy=90.0), clock=FakeClock(500.0))
    outcome, _ = engine.resolve(move_action(CRUSH), make_state(), make_session())
    assert outcome.missed is False


def test_lethal_hit_clamps_at_zero_and_faints():
    engine = BattleEngine(StubChart(), rng=FixedRandom(), clock=FakeClock(500.0))
    outcome, new_state = engine.resolve(move_action(SURGE), make_state(defender_hp=5), make_session())

    assert outcome.fainted is True
    assert new_state.hit_points["b1"] == 0
    assert new_state.is_fainted("b1")
    assert "fainted" in outcome.message


def test_status_move_only_describes_itself():
    engine = BattleEngine(StubChart(), rng=FixedRandom(), clock=FakeClock(500.0))
    outcome, new_state = engine.resolve(move_action(ROOTS, target=None), make_state(), make_session())

    assert outcome.damage == 0
    assert "Raises elegance" in outcome.message
    assert new_state.hit_points == make_state().hit_points


def test_log_entry_records_turn_actor_and_time():
    engine = BattleEngine(StubChart(), rng=FixedRandom(), clock=FakeClock(500.0))
    _, new_state = engine.resolve(move_action(SURGE), make_state(), make_session())

    entry = new_state.log[-1]
    assert entry.turn == 1
    assert entry.actor_id == 1
    assert entry.action == "move"
    assert entry.timestamp == 500.0
    assert new_state.last_action_at == 500.0


def test_ability_without_handler_is_descriptive():
    engine = make_engine()
    validated = ValidatedAction(AbilityAction("a1"), actor_id=1, opponent_id=2, actor=ATTACKER)

    outcome, new_state = engine.resolve(validated, make_state(), make_session())

    assert outcome.kind == "ability"
    assert "Earthy Depth" in outcome.message
    assert new_state.hit_points == make_state().hit_points
    assert new_state.log[-1].action == "ability"


def test_registered_item_handler_can_change_state():
    engine = make_engine()

    def decant(validated, state):
        target = validated.target.entity_id
        state.set_hp(target, state.current_hp(target) + 50)
        return "The wine breathes."

    engine.register_item_effect("Decanter", decant)
    validated = ValidatedAction(ItemAction("a1", "decanter"), actor_id=1, opponent_id=2,
                                actor=ATTACKER, target=ATTACKER)
    state = make_state()
    state.hit_points["a1"] = 100

    outcome, new_state = engine.resolve(validated, state, make_session())

    assert new_state.hit_points["a1"] == 130
    assert outcome.message.endswith("The wine breathes.")
    assert state.hit_points["a1"] == 100


def test_registered_ability_handler_message_is_appended():
    engine = make_engine()
    engine.register_ability_effect("earthy depth", lambda validated, state: "Elegance rose!")
    validated = ValidatedAction(AbilityAction("a1"), actor_id=1, opponent_id=2, actor=ATTACKER)

    outcome, _ = engine.resolve(validated, make_state(), make_session())
    assert outcome.message.endswith("Elegance rose!")


def test_switch_outcome_names_incoming_wine():
    engine = make_engine()
    validated = ValidatedAction(SwitchAction("a1", "a2"), actor_id=1, opponent_id=2,
                                actor=ATTACKER, target=SPARE)

    outcome, _ = engine.resolve(validated, make_state(), make_session())

    assert outcome.target_id == "a2"
    assert "Chianti" in outcome.message


def test_forfeit_ends_battle_for_opponent():
    engine = make_engine()
    validated = ValidatedAction(ForfeitAction(), actor_id=1, opponent_id=2)

    outcome, new_state = engine.resolve(validated, make_state(), make_session())

    assert outcome.battle_ended is True
    assert outcome.winner_id == 2
    assert outcome.end_reason == "forfeit"
    assert new_state.log[-1].action == "forfeit"


def test_type_effectiveness_rule_off_ignores_chart(type_chart):
    engine = BattleEngine(type_chart, rng=FixedRandom(), clock=FakeClock(500.0))
    modern = CombatEntity("b1", 2, "Lab Red", "Modern", level=15, stats={"power": 80, "elegance": 50})
    validated = ValidatedAction(MoveAction("a1", "terroir_surge", "b1"), actor_id=1, opponent_id=2,
                                actor=ATTACKER, target=modern, move=SURGE)

    with_chart, _ = engine.resolve(validated, make_state(), make_session())
    without_chart, _ = engine.resolve(validated, make_state(), make_session(type_effectiveness=False))

    assert with_chart.damage == 44
    assert without_chart.damage == 22
