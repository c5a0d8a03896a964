"""
Battle Config - Tunable battle and settlement numbers loaded from JSON
"""

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/battle_config.json"


@dataclass
class BattleConfig:
    """Battle rules and the statistics paid out by settlement"""

    # Roster limits
    min_roster_size: int = 1
    max_roster_size: int = 6

    # Who moves first once the opponent joins: initiator, participant or random
    first_turn: str = "initiator"

    # Move learning: one category move per N levels, at most M moves
    levels_per_move: int = 15
    max_moves: int = 4

    # Natural win/loss
    win_experience: int = 100
    win_rating: int = 50
    loss_experience: int = 25
    loss_rating: int = 25

    # Forfeit (smaller swing than a natural loss)
    forfeit_win_experience: int = 75
    forfeit_win_rating: int = 25
    forfeit_loss_experience: int = 0
    forfeit_loss_rating: int = 10

    draw_experience: int = 25

    rating_cap: int = 3000
    starting_rating: int = 1000

    # Idle turn holders forfeit after this many seconds; None disables it
    turn_timeout_seconds: Optional[int] = None

    # Game data
    moves_path: str = "data/moves.json"
    type_chart_path: str = "data/type_chart.json"
    db_path: str = "data/cellar_clash.db"

    @classmethod
    def load(cls, path: str = DEFAULT_CONFIG_PATH) -> 'BattleConfig':
        """Load from JSON; missing files or keys fall back to defaults"""
        config_path = Path(path)
        if not config_path.exists():
            logger.info("No battle config at %s, using defaults", config_path)
            return cls()

        with open(config_path, "r", encoding="utf-8") as config_file:
            data = json.load(config_file)

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown battle config keys: %s", ", ".join(sorted(unknown)))
        config = cls(**{key: value for key, value in data.items() if key in known})
        config.validate()
        return config

    def validate(self):
        if self.first_turn not in ("initiator", "participant", "random"):
            raise ValueError(f"first_turn must be initiator, participant or random, not {self.first_turn!r}")
        if not 1 <= self.min_roster_size <= self.max_roster_size:
            raise ValueError("Roster size limits are inconsistent")
        if self.turn_timeout_seconds is not None and self.turn_timeout_seconds <= 0:
            raise ValueError("turn_timeout_seconds must be positive or null")
