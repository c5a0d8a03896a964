"""
Settlement Handler - Pays out a decided battle

Turns a BattleResult into statistics ledger entries and hands the whole
unit (session completion, ledger writes, roster release) to the store as a
single transaction.
"""

import logging
from dataclasses import dataclass
from typing import List

from battle_config import BattleConfig
from battle_errors import SettlementError
from battle_state import BattleResult, BattleSession, END_FORFEIT, END_TIMEOUT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    """Statistic changes for one player"""
    user_id: int
    experience_delta: int = 0
    rating_delta: int = 0
    win_increment: int = 0
    loss_increment: int = 0
    draw_increment: int = 0


class SettlementHandler:
    """Computes and applies post-battle rewards and penalties"""

    def __init__(self, store, config: BattleConfig):
        self.store = store
        self.config = config

    def ledger_for(self, session: BattleSession, result: BattleResult) -> List[LedgerEntry]:
        cfg = self.config

        if result.is_draw:
            return [
                LedgerEntry(user_id, experience_delta=cfg.draw_experience, draw_increment=1)
                for user_id in session.participants()
            ]

        winner_id = result.winner_id
        loser_id = session.opponent_of(winner_id)
        if loser_id is None:
            raise SettlementError(f"Winner {winner_id} is not in battle {session.battle_id}")

        if result.reason in (END_FORFEIT, END_TIMEOUT):
            return [
                LedgerEntry(winner_id, cfg.forfeit_win_experience, cfg.forfeit_win_rating, win_increment=1),
                LedgerEntry(loser_id, cfg.forfeit_loss_experience, -cfg.forfeit_loss_rating, loss_increment=1),
            ]

        return [
            LedgerEntry(winner_id, cfg.win_experience, cfg.win_rating, win_increment=1),
            LedgerEntry(loser_id, cfg.loss_experience, -cfg.loss_rating, loss_increment=1),
        ]

    def settle(self, session: BattleSession, result: BattleResult) -> bool:
        """
        Returns True if this call settled the battle, False if it had
        already been settled. Raises SettlementError after a rollback.
        """
        entries = self.ledger_for(session, result)
        try:
            settled = self.store.settle(
                session.battle_id,
                winner_id=result.winner_id,
                reason=result.reason,
                ended_at=result.decided_at,
                ledger_entries=entries,
                rating_cap=self.config.rating_cap,
            )
        except SettlementError:
            logger.warning("Settlement failed for battle %s; will retry", session.battle_id, exc_info=True)
            raise

        if settled:
            logger.info(
                "Settled battle %s: winner=%s reason=%s",
                session.battle_id, result.winner_id, result.reason,
            )
        else:
            logger.debug("Battle %s was already settled", session.battle_id)
        return settled
