"""
Cellar Clash - Discord bot entry point
"""

import logging
import os

import discord
from discord.ext import commands, tasks

from battle_config import BattleConfig
from battle_manager import BattleManager
from database import MovesDatabase, TypeChart
from player_manager import PlayerManager

logger = logging.getLogger(__name__)

EXTENSIONS = ("cogs.battle_cog",)


class CellarClashBot(commands.Bot):
    """Bot wiring: game data, player storage and the battle manager"""

    def __init__(self, config: BattleConfig):
        intents = discord.Intents.default()
        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        db_path = os.getenv("CELLAR_CLASH_DB", config.db_path)

        self.moves_db = MovesDatabase(config.moves_path)
        self.type_chart = TypeChart(config.type_chart_path)
        self.player_manager = PlayerManager(
            db_path,
            moves_db=self.moves_db,
            starting_rating=config.starting_rating,
            levels_per_move=config.levels_per_move,
            max_moves=config.max_moves,
        )
        self.battle_manager = BattleManager(self.player_manager, self.moves_db, self.type_chart, config)

    async def setup_hook(self):
        for extension in EXTENSIONS:
            await self.load_extension(extension)

        settled = self.battle_manager.retry_pending_settlements()
        if settled:
            logger.info("Settled %s battle(s) left pending by a previous run", settled)

        if self.config.turn_timeout_seconds:
            self.turn_timeout_sweep.start()

        synced = await self.tree.sync()
        logger.info("Synced %s application command(s)", len(synced))

    async def on_ready(self):
        logger.info("Logged in as %s (%s)", self.user, self.user.id)

    @tasks.loop(minutes=1)
    async def turn_timeout_sweep(self):
        outcomes = self.battle_manager.enforce_turn_timeouts()
        if outcomes:
            logger.info("Forfeited %s idle battle(s)", len(outcomes))

    @turn_timeout_sweep.before_loop
    async def before_turn_timeout_sweep(self):
        await self.wait_until_ready()


def main():
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    token = os.getenv("DISCORD_TOKEN")
    if not token:
        raise SystemExit("DISCORD_TOKEN is not set")

    bot = CellarClashBot(BattleConfig.load())
    bot.run(token, log_handler=None)


if __name__ == "__main__":
    main()
