from pathlib import Path

import pytest

from battle_config import BattleConfig
from battle_engine import BattleRandom
from battle_manager import BattleManager
from database import MovesDatabase, TypeChart
from player_manager import PlayerManager

ROOT = Path(__file__).resolve().parent.parent
MOVES_PATH = ROOT / "data" / "moves.json"
TYPE_CHART_PATH = ROOT / "data" / "type_chart.json"

ALICE = 1001
BOB = 2002
CAROL = 3003


class FixedRandom(BattleRandom):
    """Always returns the configured rolls"""

    def __init__(self, accuracy: float = 0.0, critical: float = 0.99, variance: float = 1.0):
        super().__init__(seed=0)
        self.accuracy = accuracy
        self.critical = critical
        self.variance = variance

    def accuracy_roll(self) -> float:
        return self.accuracy

    def critical_roll(self) -> float:
        return self.critical

    def damage_variance(self) -> float:
        return self.variance


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def moves_db():
    return MovesDatabase(str(MOVES_PATH))


@pytest.fixture
def type_chart():
    return TypeChart(str(TYPE_CHART_PATH))


@pytest.fixture
def rng():
    return FixedRandom()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def player_manager(tmp_path, moves_db):
    manager = PlayerManager(str(tmp_path / "cellar.db"), moves_db=moves_db)
    manager.create_player(ALICE, "alice")
    manager.create_player(BOB, "bob")
    manager.create_player(CAROL, "carol")
    return manager


@pytest.fixture
def config():
    return BattleConfig()


@pytest.fixture
def battle_manager(player_manager, moves_db, type_chart, config, rng, clock):
    return BattleManager(player_manager, moves_db, type_chart, config, rng=rng, clock=clock)


def add_wine(player_manager, owner_id, name="Barolo", category="Terroir", level=15,
             power=80, elegance=50, ability="Earthy Depth", **stats):
    stats = dict(stats, power=power, elegance=elegance)
    return player_manager.add_entity(owner_id, name, category, level=level, stats=stats, ability=ability)


@pytest.fixture
def started_battle(battle_manager, player_manager):
    """Alice (initiator, acts first) vs Bob, one wine each plus a spare for Alice"""
    alice_wine = add_wine(player_manager, ALICE, "Barolo")
    alice_spare = add_wine(player_manager, ALICE, "Chianti")
    bob_wine = add_wine(player_manager, BOB, "Rioja", power=1, elegance=1)

    session = battle_manager.create_battle(ALICE, [alice_wine, alice_spare])
    battle_manager.join_battle(session.battle_id, BOB, [bob_wine])
    return {
        "battle_id": session.battle_id,
        "alice_wine": alice_wine,
        "alice_spare": alice_spare,
        "bob_wine": bob_wine,
    }
