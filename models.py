"""
Data Models - Classes for wines, moves and player profiles
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


# Stat vector carried by every wine. "power" is the offense stat and
# "elegance" plays the defensive role in the damage formula.
STAT_KEYS = ('power', 'elegance', 'complexity', 'longevity', 'rarity', 'terroir')

WINE_TYPES = (
    'Terroir',
    'Varietal',
    'Technique',
    'Heritage',
    'Modern',
    'Mystical',
    'Energy',
    'Flow',
)

# Lock statuses for wines; only 'Captured' wines may join a battle
LOCK_CAPTURED = 'Captured'
LOCK_IN_BATTLE = 'InBattle'

BASIC_STRIKE_ID = 'basic_strike'

DEFAULT_MAX_HP = 100
DEFAULT_STAT = 50


@dataclass(frozen=True)
class Move:
    """A move a wine can use in battle"""
    move_id: str
    name: str
    category: str
    power: int = 0
    accuracy: int = 100
    priority: int = 0
    effect: str = ''

    @property
    def is_damaging(self) -> bool:
        return self.power > 0

    @classmethod
    def from_dict(cls, data: Dict) -> 'Move':
        return cls(
            move_id=data['id'],
            name=data.get('name', data['id']),
            category=data.get('category', 'Terroir'),
            power=int(data.get('power', 0) or 0),
            accuracy=int(data.get('accuracy', 100)),
            priority=int(data.get('priority', 0) or 0),
            effect=data.get('effect') or '',
        )


@dataclass
class CombatEntity:
    """Read-only battle view of a wine owned by a player"""
    entity_id: str
    owner_id: int
    name: str
    category: str
    level: int = 1
    stats: Dict[str, int] = field(default_factory=dict)
    ability: Optional[str] = None
    lock_status: str = LOCK_CAPTURED
    battle_id: Optional[str] = None

    @property
    def computed_total(self) -> int:
        """Sum of the stat vector; doubles as max hit points."""
        total = sum(int(self.stats.get(key, 0) or 0) for key in STAT_KEYS)
        return total or DEFAULT_MAX_HP

    @property
    def max_hp(self) -> int:
        return self.computed_total

    @property
    def offense(self) -> int:
        return int(self.stats.get('power') or 0) or self.computed_total or DEFAULT_STAT

    @property
    def defense(self) -> int:
        return int(self.stats.get('elegance') or 0) or DEFAULT_STAT

    @property
    def is_available(self) -> bool:
        return self.lock_status == LOCK_CAPTURED and self.battle_id is None

    @classmethod
    def from_row(cls, row: Dict) -> 'CombatEntity':
        """Build from a wine_entities database row"""
        return cls(
            entity_id=row['entity_id'],
            owner_id=row['owner_id'],
            name=row['name'],
            category=row['category'],
            level=row.get('level') or 1,
            stats={key: row.get(f'stat_{key}') or 0 for key in STAT_KEYS},
            ability=row.get('ability'),
            lock_status=row.get('lock_status') or LOCK_CAPTURED,
            battle_id=row.get('battle_id'),
        )

    def to_dict(self) -> Dict:
        """Convert to dictionary for database storage"""
        data = {
            'entity_id': self.entity_id,
            'owner_id': self.owner_id,
            'name': self.name,
            'category': self.category,
            'level': self.level,
            'ability': self.ability,
            'lock_status': self.lock_status,
            'battle_id': self.battle_id,
        }
        for key in STAT_KEYS:
            data[f'stat_{key}'] = int(self.stats.get(key, 0) or 0)
        return data


class PlayerProfile:
    """Represents a player's battle record"""

    def __init__(self, data: Dict):
        """Initialize from database row"""
        self.user_id = data['user_id']
        self.username = data['username']
        self.level = data.get('level', 1)
        self.experience_competition = data.get('experience_competition', 0)
        self.battle_rating = data.get('battle_rating', 1000)
        self.battle_wins = data.get('battle_wins', 0)
        self.battle_losses = data.get('battle_losses', 0)
        self.battle_draws = data.get('battle_draws', 0)

    @property
    def battles_played(self) -> int:
        return self.battle_wins + self.battle_losses + self.battle_draws

    def get_win_rate(self) -> float:
        """Get wins as a percentage of battles played"""
        if self.battles_played == 0:
            return 0.0
        return (self.battle_wins / self.battles_played) * 100

    def get_record_display(self) -> str:
        return f"{self.battle_wins}W / {self.battle_losses}L / {self.battle_draws}D"


def learnable_move_ids(entity: CombatEntity, moves_by_category: List[Move],
                       max_moves: int = 4, levels_per_move: int = 15) -> List[str]:
    """
    Moves an entity knows: the basic strike plus one move of its own
    category for every `levels_per_move` levels, at most `max_moves`.
    """
    move_ids = [BASIC_STRIKE_ID]
    candidates = [move for move in moves_by_category if move.move_id != BASIC_STRIKE_ID]
    for index, move in enumerate(candidates):
        if entity.level >= (index + 1) * levels_per_move:
            move_ids.append(move.move_id)
    return move_ids[:max_moves]
