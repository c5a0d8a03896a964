"""
Battle Store - SQLite persistence for battle sessions and state documents

Sessions live in a relational table; the per-turn state is stored as one
JSON document per battle next to its version token. Every write runs in a
`BEGIN IMMEDIATE` transaction so two requests can never both commit the
same turn.
"""

import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from typing import Iterable, List, Optional, Tuple

from battle_errors import ConflictError, NotFoundError, SettlementError
from battle_state import BattleSession, BattleState, BattleStatus

logger = logging.getLogger(__name__)


class BattleStore:
    """Battle persistence on top of the player database file"""

    def __init__(self, player_db):
        """
        Args:
            player_db: PlayerDatabase sharing the same sqlite file; its roster
                lock and ledger writes join the store's transactions
        """
        self.player_db = player_db
        self.init_tables()

    def get_connection(self):
        conn = self.player_db.get_connection()
        # Transactions are opened explicitly below
        conn.isolation_level = None
        return conn

    def init_tables(self):
        conn = self.player_db.get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS battle_sessions (
                battle_id TEXT PRIMARY KEY,
                initiator_id INTEGER NOT NULL,
                participant_id INTEGER,
                category TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'WaitingForOpponent',
                initiator_roster TEXT NOT NULL,
                participant_roster TEXT NOT NULL DEFAULT '[]',
                challenger_id INTEGER,
                is_private INTEGER DEFAULT 0,
                entry_fee INTEGER DEFAULT 0,
                rules TEXT NOT NULL DEFAULT '{}',
                created_at REAL NOT NULL,
                started_at REAL,
                ended_at REAL,
                winner_id INTEGER,
                end_reason TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS battle_states (
                battle_id TEXT PRIMARY KEY,
                version INTEGER NOT NULL,
                document TEXT NOT NULL,
                updated_at REAL NOT NULL,
                FOREIGN KEY (battle_id) REFERENCES battle_sessions(battle_id)
            )
        """)

        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_battle_sessions_status ON battle_sessions(status)"
        )

        conn.commit()
        conn.close()

    @contextmanager
    def _transaction(self):
        """Yield a cursor inside BEGIN IMMEDIATE; commit on success, roll back on error"""
        conn = self.get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute("BEGIN IMMEDIATE")
            yield cursor
            cursor.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                cursor.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    # ========================
    # Row mapping
    # ========================

    @staticmethod
    def _session_from_row(row) -> BattleSession:
        return BattleSession(
            battle_id=row['battle_id'],
            initiator_id=row['initiator_id'],
            participant_id=row['participant_id'],
            category=row['category'],
            status=BattleStatus(row['status']),
            initiator_roster=json.loads(row['initiator_roster']),
            participant_roster=json.loads(row['participant_roster'] or '[]'),
            challenger_id=row['challenger_id'],
            is_private=bool(row['is_private']),
            entry_fee=row['entry_fee'] or 0,
            rules=json.loads(row['rules'] or '{}'),
            created_at=row['created_at'],
            started_at=row['started_at'],
            ended_at=row['ended_at'],
            winner_id=row['winner_id'],
            end_reason=row['end_reason'],
        )

    @staticmethod
    def _dump_state(state: BattleState) -> str:
        return json.dumps(state.to_dict())

    # ========================
    # Reads
    # ========================

    def load(self, battle_id: str) -> Tuple[BattleSession, Optional[BattleState]]:
        """Session plus its state document (None until the battle starts)"""
        conn = self.player_db.get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute("SELECT * FROM battle_sessions WHERE battle_id = ?", (battle_id,))
            row = cursor.fetchone()
            if row is None:
                raise NotFoundError(f"Battle {battle_id} not found")
            session = self._session_from_row(row)

            cursor.execute("SELECT document FROM battle_states WHERE battle_id = ?", (battle_id,))
            state_row = cursor.fetchone()
        finally:
            conn.close()

        state = BattleState.from_dict(json.loads(state_row['document'])) if state_row else None
        return session, state

    def list_sessions(self, statuses: Optional[Iterable[BattleStatus]] = None,
                      user_id: Optional[int] = None, include_private: bool = True,
                      limit: Optional[int] = 25) -> List[BattleSession]:
        """Newest first; limit=None returns every match"""
        clauses = []
        params: list = []
        if statuses:
            statuses = list(statuses)
            clauses.append(f"status IN ({', '.join('?' for _ in statuses)})")
            params.extend(status.value for status in statuses)
        if user_id is not None:
            clauses.append("(initiator_id = ? OR participant_id = ?)")
            params.extend([user_id, user_id])
        if not include_private:
            clauses.append("is_private = 0")

        query = "SELECT * FROM battle_sessions"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        conn = self.player_db.get_connection()
        cursor = conn.cursor()
        cursor.execute(query, params)
        sessions = [self._session_from_row(row) for row in cursor.fetchall()]
        conn.close()
        return sessions

    # ========================
    # Lifecycle writes
    # ========================

    def create_session(self, session: BattleSession):
        """Insert a waiting session and lock the initiator's roster"""
        with self._transaction() as cursor:
            self.player_db.lock_entities(
                cursor, session.initiator_id, session.initiator_roster, session.battle_id
            )
            cursor.execute(
                """
                INSERT INTO battle_sessions (
                    battle_id, initiator_id, participant_id, category, status,
                    initiator_roster, participant_roster, challenger_id, is_private,
                    entry_fee, rules, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.battle_id,
                    session.initiator_id,
                    session.participant_id,
                    session.category,
                    session.status.value,
                    json.dumps(session.initiator_roster),
                    json.dumps(session.participant_roster),
                    session.challenger_id,
                    int(session.is_private),
                    session.entry_fee,
                    json.dumps(session.rules),
                    session.created_at,
                ),
            )

    def start_session(self, session: BattleSession, state: BattleState):
        """
        Record the join: only one opponent can win the race for a waiting
        battle, the loser gets ConflictError.
        """
        with self._transaction() as cursor:
            cursor.execute(
                """
                UPDATE battle_sessions
                SET participant_id = ?, participant_roster = ?, status = ?, started_at = ?
                WHERE battle_id = ? AND status = ? AND participant_id IS NULL
                """,
                (
                    session.participant_id,
                    json.dumps(session.participant_roster),
                    BattleStatus.IN_PROGRESS.value,
                    session.started_at,
                    session.battle_id,
                    BattleStatus.WAITING.value,
                ),
            )
            if cursor.rowcount != 1:
                raise ConflictError(f"Battle {session.battle_id} is no longer open")

            self.player_db.lock_entities(
                cursor, session.participant_id, session.participant_roster, session.battle_id
            )
            cursor.execute(
                "INSERT INTO battle_states (battle_id, version, document, updated_at) VALUES (?, ?, ?, ?)",
                (session.battle_id, state.version, self._dump_state(state), time.time()),
            )

    def commit(self, battle_id: str, new_state: BattleState):
        """Compare-and-swap: the stored version must be new_state.version - 1"""
        with self._transaction() as cursor:
            cursor.execute("SELECT version FROM battle_states WHERE battle_id = ?", (battle_id,))
            row = cursor.fetchone()
            if row is None:
                raise NotFoundError(f"Battle {battle_id} has no state")
            if row['version'] != new_state.version - 1:
                logger.warning(
                    "Stale commit for battle %s: stored v%s, got v%s",
                    battle_id, row['version'], new_state.version,
                )
                raise ConflictError(f"Battle {battle_id} changed since it was loaded")

            cursor.execute(
                """
                UPDATE battle_states
                SET version = ?, document = ?, updated_at = ?
                WHERE battle_id = ? AND version = ?
                """,
                (new_state.version, self._dump_state(new_state), time.time(),
                 battle_id, new_state.version - 1),
            )

    def cancel_session(self, battle_id: str, expected_status: BattleStatus,
                       expected_version: Optional[int] = None, ended_at: Optional[float] = None):
        """Cancel and release both rosters, if nothing moved since the caller looked"""
        with self._transaction() as cursor:
            cursor.execute(
                """
                UPDATE battle_sessions
                SET status = ?, ended_at = ?
                WHERE battle_id = ? AND status = ?
                """,
                (BattleStatus.CANCELLED.value, ended_at or time.time(), battle_id, expected_status.value),
            )
            if cursor.rowcount != 1:
                raise ConflictError(f"Battle {battle_id} can no longer be cancelled")

            if expected_version is not None:
                cursor.execute("SELECT version FROM battle_states WHERE battle_id = ?", (battle_id,))
                row = cursor.fetchone()
                if row is None or row['version'] != expected_version:
                    raise ConflictError(f"Battle {battle_id} changed since it was loaded")

            self.player_db.release_entities(cursor, battle_id)

    def settle(self, battle_id: str, winner_id: Optional[int], reason: str, ended_at: float,
               ledger_entries: Iterable, rating_cap: int) -> bool:
        """
        Complete the session, write every ledger entry and release both
        rosters as one transaction.

        Returns False when the battle was already settled. Any failure rolls
        the whole unit back and raises SettlementError.
        """
        try:
            with self._transaction() as cursor:
                cursor.execute(
                    """
                    UPDATE battle_sessions
                    SET status = ?, winner_id = ?, end_reason = ?, ended_at = ?
                    WHERE battle_id = ? AND status = ?
                    """,
                    (
                        BattleStatus.COMPLETED.value,
                        winner_id,
                        reason,
                        ended_at,
                        battle_id,
                        BattleStatus.IN_PROGRESS.value,
                    ),
                )
                if cursor.rowcount != 1:
                    return False

                for entry in ledger_entries:
                    self.player_db.apply_outcome(
                        cursor,
                        entry.user_id,
                        experience_delta=entry.experience_delta,
                        rating_delta=entry.rating_delta,
                        win_increment=entry.win_increment,
                        loss_increment=entry.loss_increment,
                        draw_increment=entry.draw_increment,
                        rating_cap=rating_cap,
                    )

                self.player_db.release_entities(cursor, battle_id)
        except (sqlite3.Error, NotFoundError) as exc:
            raise SettlementError(f"Settlement of battle {battle_id} failed: {exc}") from exc
        return True
