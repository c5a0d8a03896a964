"""
Database Module - Handles loading game data and player data storage
"""

import json
import re
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from battle_errors import NotFoundError, ValidationError
from models import (
    BASIC_STRIKE_ID,
    LOCK_CAPTURED,
    LOCK_IN_BATTLE,
    STAT_KEYS,
    WINE_TYPES,
    Move,
)


# ============================================================
# GAME DATA LOADERS (Read-only JSON data)
# ============================================================

class TypeChart:
    """Loads the wine type effectiveness chart"""

    ALLOWED_MULTIPLIERS = (0.0, 0.5, 1.0, 1.5, 2.0)

    def __init__(self, json_path: str):
        with open(json_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        self.chart: Dict[str, Dict[str, float]] = {}
        for attacking, row in data['type_chart'].items():
            self.chart[attacking.lower()] = {
                defending.lower(): float(value) for defending, value in row.items()
            }
        self._validate()

    def _validate(self):
        for attacking, row in self.chart.items():
            for defending, value in row.items():
                if value not in self.ALLOWED_MULTIPLIERS:
                    raise ValueError(
                        f"Invalid multiplier {value} for {attacking} -> {defending}"
                    )

    def get_effectiveness(self, attacking_type: str, defending_type: str) -> float:
        """Get type effectiveness multiplier (1.0 for unknown pairings)"""
        return self.chart.get(attacking_type.lower(), {}).get(defending_type.lower(), 1.0)


class MovesDatabase:
    """Loads and queries move data"""

    def __init__(self, json_path: str):
        with open(json_path, 'r', encoding='utf-8') as f:
            raw = json.load(f)

        self.data: Dict[str, Move] = {}
        for move_id, move_data in raw.items():
            move_data = dict(move_data)
            move_data.setdefault('id', move_id)
            self.data[move_id] = Move.from_dict(move_data)

        # "Basic Strike", "basic-strike" and "basicstrike" all resolve
        self._alias_map = {}
        for move_id, move in self.data.items():
            self._alias_map.setdefault(re.sub(r'[\s_-]+', '', move_id.lower()), move_id)
            self._alias_map.setdefault(re.sub(r'[\s_-]+', '', move.name.lower()), move_id)

    def get_move(self, move_id: str) -> Optional[Move]:
        """Get move by ID or display name"""
        if not move_id:
            return None
        normalized = move_id.lower().strip().replace(' ', '_')
        move = self.data.get(normalized)
        if move:
            return move

        alias = self._alias_map.get(re.sub(r'[\s_-]+', '', move_id.lower()))
        if alias:
            return self.data.get(alias)
        return None

    def get_moves_by_category(self, category: str) -> List[Move]:
        """Get all moves of a wine type, in catalog order"""
        return [
            move for move in self.data.values()
            if move.category.lower() == category.lower() and move.move_id != BASIC_STRIKE_ID
        ]


# ============================================================
# PLAYER DATA STORAGE (SQLite database)
# ============================================================

class PlayerDatabase:
    """Handles player profiles and wine collections in SQLite"""

    def __init__(self, db_path: str = "data/cellar_clash.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.init_database()

    def init_database(self):
        """Create tables if they don't exist"""
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS players (
                user_id INTEGER PRIMARY KEY,
                username TEXT NOT NULL,
                level INTEGER DEFAULT 1,

                -- Battle record
                experience_competition INTEGER DEFAULT 0,
                battle_rating INTEGER DEFAULT 1000,
                battle_wins INTEGER DEFAULT 0,
                battle_losses INTEGER DEFAULT 0,
                battle_draws INTEGER DEFAULT 0,

                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS wine_entities (
                entity_id TEXT PRIMARY KEY,
                owner_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                category TEXT NOT NULL,
                level INTEGER DEFAULT 1,
                ability TEXT,

                -- Base stats (0-255)
                stat_power INTEGER DEFAULT 0,
                stat_elegance INTEGER DEFAULT 0,
                stat_complexity INTEGER DEFAULT 0,
                stat_longevity INTEGER DEFAULT 0,
                stat_rarity INTEGER DEFAULT 0,
                stat_terroir INTEGER DEFAULT 0,

                -- Captured, InBattle, Trading, Listed ...
                lock_status TEXT DEFAULT 'Captured',
                battle_id TEXT,

                captured_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (owner_id) REFERENCES players(user_id)
            )
        """)

        self._ensure_player_columns(cursor)

        conn.commit()
        conn.close()

    def _get_table_columns(self, cursor, table_name: str) -> set:
        cursor.execute(f"PRAGMA table_info({table_name})")
        return {row[1] for row in cursor.fetchall()}

    def _ensure_player_columns(self, cursor):
        """Add missing player columns when migrating older databases."""
        existing_columns = self._get_table_columns(cursor, 'players')

        def add_column(column: str, definition: str) -> bool:
            if column not in existing_columns:
                cursor.execute(f"ALTER TABLE players ADD COLUMN {column} {definition}")
                existing_columns.add(column)
                return True
            return False

        # Draws were not tracked by the first schema
        add_column('battle_draws', 'INTEGER DEFAULT 0')

    def get_connection(self):
        """Get database connection"""
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    # ============================================================
    # PLAYER OPERATIONS
    # ============================================================

    def create_player(self, user_id: int, username: str, battle_rating: int = 1000) -> bool:
        """Create a new player profile"""
        conn = self.get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(
                "INSERT INTO players (user_id, username, battle_rating) VALUES (?, ?, ?)",
                (user_id, username, battle_rating),
            )
            conn.commit()
            return True
        except sqlite3.IntegrityError:
            return False  # Player already exists
        finally:
            conn.close()

    def get_player(self, user_id: int) -> Optional[Dict]:
        """Get player by user ID"""
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT * FROM players WHERE user_id = ?", (user_id,))
        row = cursor.fetchone()
        conn.close()

        if row:
            return dict(row)
        return None

    def get_top_rated_players(self, limit: int = 10) -> List[Dict[str, Any]]:
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT user_id, username, battle_rating, battle_wins, battle_losses, battle_draws
            FROM players
            ORDER BY battle_rating DESC, battle_wins DESC
            LIMIT ?
            """,
            (limit,)
        )
        rows = [dict(row) for row in cursor.fetchall()]
        conn.close()
        return rows

    def apply_outcome(
        self,
        cursor,
        user_id: int,
        experience_delta: int = 0,
        rating_delta: int = 0,
        win_increment: int = 0,
        loss_increment: int = 0,
        draw_increment: int = 0,
        rating_cap: int = 3000,
    ):
        """
        Statistics ledger write. Runs on the caller's cursor so it joins the
        caller's transaction; the rating is kept within [0, rating_cap].
        """
        cursor.execute(
            """
            UPDATE players
            SET experience_competition = MAX(experience_competition + ?, 0),
                battle_rating = MIN(MAX(battle_rating + ?, 0), ?),
                battle_wins = battle_wins + ?,
                battle_losses = battle_losses + ?,
                battle_draws = battle_draws + ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE user_id = ?
            """,
            (
                experience_delta,
                rating_delta,
                rating_cap,
                win_increment,
                loss_increment,
                draw_increment,
                user_id,
            ),
        )
        if cursor.rowcount != 1:
            raise NotFoundError(f"Player {user_id} not found")

    # ============================================================
    # WINE OPERATIONS
    # ============================================================

    def add_entity(self, entity_data: Dict) -> str:
        """Add a wine to a player's collection"""
        conn = self.get_connection()
        cursor = conn.cursor()

        entity_id = entity_data.get('entity_id') or str(uuid.uuid4())

        column_value_pairs = [
            ('entity_id', entity_id),
            ('owner_id', entity_data['owner_id']),
            ('name', entity_data['name']),
            ('category', entity_data['category']),
            ('level', entity_data.get('level', 1)),
            ('ability', entity_data.get('ability')),
            ('lock_status', entity_data.get('lock_status') or LOCK_CAPTURED),
            ('battle_id', entity_data.get('battle_id')),
        ]
        for key in STAT_KEYS:
            column_value_pairs.append((f'stat_{key}', entity_data.get(f'stat_{key}', 0)))

        columns = ", ".join(name for name, _ in column_value_pairs)
        placeholders = ", ".join("?" for _ in column_value_pairs)
        values = tuple(value for _, value in column_value_pairs)

        cursor.execute(
            f"""
            INSERT INTO wine_entities ({columns})
            VALUES ({placeholders})
        """,
            values,
        )

        conn.commit()
        conn.close()

        return entity_id

    def get_entity(self, entity_id: str) -> Optional[Dict]:
        """Get a specific wine by ID"""
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT * FROM wine_entities WHERE entity_id = ?", (entity_id,))
        row = cursor.fetchone()
        conn.close()

        if row:
            return dict(row)
        return None

    def get_entities(self, entity_ids: Iterable[str]) -> Dict[str, Dict]:
        ids = list(entity_ids)
        if not ids:
            return {}
        conn = self.get_connection()
        cursor = conn.cursor()
        placeholders = ", ".join("?" for _ in ids)
        cursor.execute(f"SELECT * FROM wine_entities WHERE entity_id IN ({placeholders})", ids)
        rows = {row['entity_id']: dict(row) for row in cursor.fetchall()}
        conn.close()
        return rows

    def get_player_entities(self, owner_id: int) -> List[Dict]:
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM wine_entities WHERE owner_id = ? ORDER BY level DESC, name",
            (owner_id,),
        )
        rows = [dict(row) for row in cursor.fetchall()]
        conn.close()
        return rows

    # ------------------------------------------------------------
    # Battle roster locks (called inside a store transaction)
    # ------------------------------------------------------------
    def lock_entities(self, cursor, owner_id: int, entity_ids: List[str], battle_id: str):
        """Commit wines to a battle; every wine must be owned and uncommitted."""
        for entity_id in entity_ids:
            cursor.execute(
                """
                UPDATE wine_entities
                SET lock_status = ?, battle_id = ?
                WHERE entity_id = ? AND owner_id = ?
                  AND lock_status = ? AND battle_id IS NULL
                """,
                (LOCK_IN_BATTLE, battle_id, entity_id, owner_id, LOCK_CAPTURED),
            )
            if cursor.rowcount != 1:
                cursor.execute(
                    "SELECT owner_id, lock_status FROM wine_entities WHERE entity_id = ?",
                    (entity_id,),
                )
                row = cursor.fetchone()
                if row is None or row['owner_id'] != owner_id:
                    raise ValidationError(
                        f"Wine {entity_id} is not in your collection",
                        ValidationError.ENTITY_NOT_OWNED,
                    )
                raise ValidationError(
                    f"Wine {entity_id} is already committed ({row['lock_status']})",
                    ValidationError.ENTITY_NOT_OWNED,
                )

    def release_entities(self, cursor, battle_id: str) -> int:
        """Release every wine committed to a battle back to the collection."""
        cursor.execute(
            """
            UPDATE wine_entities
            SET lock_status = ?, battle_id = NULL
            WHERE battle_id = ?
            """,
            (LOCK_CAPTURED, battle_id),
        )
        return cursor.rowcount


def is_known_category(category: str) -> bool:
    return category.lower() in {t.lower() for t in WINE_TYPES}