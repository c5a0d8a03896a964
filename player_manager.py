"""
Player Manager - Handles player profiles, wine collections and battle records
"""

from typing import Dict, List, Optional

from battle_errors import NotFoundError, ValidationError
from database import PlayerDatabase, is_known_category
from models import CombatEntity, PlayerProfile, STAT_KEYS, learnable_move_ids


class PlayerManager:
    """Manages player data and the wines battles read from"""

    MAX_BASE_STAT = 255

    def __init__(self, db_path: str = "data/cellar_clash.db", moves_db=None,
                 starting_rating: int = 1000, levels_per_move: int = 15, max_moves: int = 4):
        self.db = PlayerDatabase(db_path)
        self.moves_db = moves_db
        self.starting_rating = starting_rating
        self.levels_per_move = levels_per_move
        self.max_moves = max_moves

    # ============================================================
    # PLAYER OPERATIONS
    # ============================================================

    def player_exists(self, user_id: int) -> bool:
        """Check if player has registered"""
        return self.db.get_player(user_id) is not None

    def create_player(self, user_id: int, username: str) -> bool:
        """
        Create a new player profile

        Returns:
            True if created successfully, False if already exists
        """
        return self.db.create_player(user_id, username, battle_rating=self.starting_rating)

    def get_player(self, user_id: int) -> Optional[PlayerProfile]:
        data = self.db.get_player(user_id)
        if data:
            return PlayerProfile(data)
        return None

    def get_leaderboard(self, limit: int = 10) -> List[PlayerProfile]:
        return [PlayerProfile(row) for row in self.db.get_top_rated_players(limit)]

    def apply_outcome(self, user_id: int, experience_delta: int = 0, rating_delta: int = 0,
                      win_increment: int = 0, loss_increment: int = 0, draw_increment: int = 0,
                      rating_cap: int = 3000):
        """Ledger write outside of a battle settlement (admin corrections)"""
        conn = self.db.get_connection()
        cursor = conn.cursor()
        try:
            self.db.apply_outcome(
                cursor,
                user_id,
                experience_delta=experience_delta,
                rating_delta=rating_delta,
                win_increment=win_increment,
                loss_increment=loss_increment,
                draw_increment=draw_increment,
                rating_cap=rating_cap,
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ============================================================
    # WINE OPERATIONS
    # ============================================================

    def add_entity(self, owner_id: int, name: str, category: str, level: int = 1,
                   stats: Optional[Dict[str, int]] = None, ability: Optional[str] = None) -> str:
        """Add a captured wine to a player's collection and return its ID"""
        if not self.player_exists(owner_id):
            raise NotFoundError(f"Player {owner_id} is not registered")
        if not is_known_category(category):
            raise ValidationError(f"Unknown wine type '{category}'", ValidationError.MALFORMED_ACTION)
        if not 1 <= level <= 100:
            raise ValidationError("Level must be between 1 and 100", ValidationError.MALFORMED_ACTION)

        entity = CombatEntity(
            entity_id='',
            owner_id=owner_id,
            name=name,
            category=category.title(),
            level=level,
            stats={key: max(0, min(self.MAX_BASE_STAT, int((stats or {}).get(key, 0))))
                   for key in STAT_KEYS},
            ability=ability,
        )
        data = entity.to_dict()
        data.pop('entity_id')
        return self.db.add_entity(data)

    def get_entity(self, entity_id: str) -> CombatEntity:
        """Roster lookup used by battles"""
        row = self.db.get_entity(entity_id)
        if row is None:
            raise NotFoundError(f"Wine {entity_id} not found")
        return CombatEntity.from_row(row)

    def get_entities(self, entity_ids: List[str]) -> Dict[str, CombatEntity]:
        rows = self.db.get_entities(entity_ids)
        missing = [entity_id for entity_id in entity_ids if entity_id not in rows]
        if missing:
            raise NotFoundError(f"Wine {missing[0]} not found")
        return {entity_id: CombatEntity.from_row(row) for entity_id, row in rows.items()}

    def get_player_entities(self, owner_id: int, available_only: bool = False) -> List[CombatEntity]:
        entities = [CombatEntity.from_row(row) for row in self.db.get_player_entities(owner_id)]
        if available_only:
            entities = [entity for entity in entities if entity.is_available]
        return entities

    def get_available_moves_for_entity(self, entity_id: str) -> List[str]:
        """Move IDs the wine can use in battle"""
        entity = self.get_entity(entity_id)
        by_category = self.moves_db.get_moves_by_category(entity.category) if self.moves_db else []
        return learnable_move_ids(
            entity,
            by_category,
            max_moves=self.max_moves,
            levels_per_move=self.levels_per_move,
        )

