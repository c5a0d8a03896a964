"""
Battle Cog - /battle slash commands for wine battles
"""

import logging
from typing import Any, Dict, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from battle_errors import BattleError, NotFoundError
from battle_state import BATTLE_CATEGORIES, DEFAULT_CATEGORY, BattleStatus
from ui.embeds import EmbedBuilder

logger = logging.getLogger(__name__)


def is_admin(interaction: discord.Interaction) -> bool:
    """Return True when the invoking user has administrator permissions."""
    permissions = getattr(interaction.user, "guild_permissions", None)
    return bool(permissions and permissions.administrator)


def parse_id_list(raw: str) -> List[str]:
    """Split a comma or space separated list of wine IDs"""
    return [part for part in raw.replace(",", " ").split() if part]


ERROR_MESSAGES = {
    "NotYourTurn": "It's not your turn!",
    "NotParticipant": "You are not a participant in this battle.",
    "BattleNotInProgress": "This battle is not in progress.",
    "Conflict": "The battle changed while you were choosing. Check `/battle status` and try again.",
    "SettlementError": "The battle is over but rewards could not be paid out yet. They will be retried.",
}

CATEGORY_CHOICES = [app_commands.Choice(name=category, value=category) for category in BATTLE_CATEGORIES]


class BattleCog(commands.GroupCog, group_name="battle", group_description="Wine battles"):
    """Handles the battle commands; all rules live in the BattleManager."""

    def __init__(self, bot):
        self.bot = bot

    @property
    def battle_manager(self):
        return self.bot.battle_manager

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------
    @staticmethod
    def describe_error(error: BattleError) -> str:
        if error.kind in ERROR_MESSAGES:
            return ERROR_MESSAGES[error.kind]
        return error.message

    def entity_name(self, entity_id: str) -> str:
        try:
            return self.bot.player_manager.get_entity(entity_id).name
        except NotFoundError:
            return entity_id

    async def _send_error(self, interaction: discord.Interaction, error: BattleError):
        logger.debug("Battle command by %s rejected: %s (%s)", interaction.user.id, error.message, error.kind)
        embed = EmbedBuilder.error(self.describe_error(error))
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=True)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=True)

    async def _submit(self, interaction: discord.Interaction, battle_id: str, payload: Dict[str, Any]):
        try:
            outcome = self.battle_manager.submit_action(battle_id, interaction.user.id, payload)
        except BattleError as error:
            await self._send_error(interaction, error)
            return
        await interaction.response.send_message(embed=EmbedBuilder.action_result(outcome))

    # ============================================================
    # LOBBY
    # ============================================================

    @app_commands.command(name="create", description="Open a battle with up to 6 of your wines")
    @app_commands.describe(
        wines="Wine IDs separated by commas",
        battle_type="Battle format",
        opponent="Only this player may join",
        private="Hide the battle from the public list",
        entry_fee="Entry fee shown to the opponent",
        type_effectiveness="Apply the wine type chart",
        critical_hits="Allow critical hits",
    )
    @app_commands.choices(battle_type=CATEGORY_CHOICES)
    async def create(
        self,
        interaction: discord.Interaction,
        wines: str,
        battle_type: Optional[app_commands.Choice[str]] = None,
        opponent: Optional[discord.User] = None,
        private: bool = False,
        entry_fee: app_commands.Range[int, 0] = 0,
        type_effectiveness: bool = True,
        critical_hits: bool = True,
    ):
        try:
            session = self.battle_manager.create_battle(
                interaction.user.id,
                parse_id_list(wines),
                category=battle_type.value if battle_type else DEFAULT_CATEGORY,
                is_private=private,
                entry_fee=entry_fee,
                rules={"type_effectiveness": type_effectiveness, "critical_hits": critical_hits},
                challenger_id=opponent.id if opponent else None,
            )
        except BattleError as error:
            await self._send_error(interaction, error)
            return
        await interaction.response.send_message(embed=EmbedBuilder.battle_created(session), ephemeral=private)

    @app_commands.command(name="join", description="Join a waiting battle")
    @app_commands.describe(battle_id="Battle to join", wines="Wine IDs separated by commas")
    async def join(self, interaction: discord.Interaction, battle_id: str, wines: str):
        try:
            self.battle_manager.join_battle(battle_id, interaction.user.id, parse_id_list(wines))
            snapshot = self.battle_manager.get_snapshot(battle_id, interaction.user.id)
        except BattleError as error:
            await self._send_error(interaction, error)
            return
        await interaction.response.send_message(
            content=f"<@{snapshot.session.initiator_id}> your battle has started!",
            embed=EmbedBuilder.battle_status(snapshot, self.entity_name),
        )

    @app_commands.command(name="list", description="Show open battles, or your own")
    @app_commands.describe(mine="Only show battles you are part of")
    async def list_battles(self, interaction: discord.Interaction, mine: bool = False):
        if mine:
            sessions = self.battle_manager.list_battles(
                [BattleStatus.WAITING, BattleStatus.IN_PROGRESS], user_id=interaction.user.id
            )
            embed = EmbedBuilder.battle_list(sessions, title="🍷 Your Battles")
        else:
            sessions = self.battle_manager.list_battles([BattleStatus.WAITING])
            embed = EmbedBuilder.battle_list(sessions)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="status", description="Show a battle")
    async def status(self, interaction: discord.Interaction, battle_id: str):
        try:
            snapshot = self.battle_manager.get_snapshot(battle_id, interaction.user.id)
        except BattleError as error:
            await self._send_error(interaction, error)
            return

        embeds = [EmbedBuilder.battle_status(snapshot, self.entity_name)]
        if snapshot.available_actions:
            embeds.append(EmbedBuilder.available_actions(snapshot.available_actions, self.entity_name))
        await interaction.response.send_message(embeds=embeds, ephemeral=snapshot.session.is_private)

    @app_commands.command(name="cancel", description="[ADMIN] Cancel a battle before the first turn")
    async def cancel(self, interaction: discord.Interaction, battle_id: str):
        try:
            self.battle_manager.cancel_battle(battle_id, interaction.user.id, is_admin=is_admin(interaction))
        except BattleError as error:
            await self._send_error(interaction, error)
            return
        await interaction.response.send_message(f"🚫 Battle `{battle_id}` was cancelled.", ephemeral=True)

    # ============================================================
    # TURN ACTIONS
    # ============================================================

    @app_commands.command(name="move", description="Use a move")
    @app_commands.describe(wine="Your acting wine", move="Move name or ID", target="Opposing wine to hit")
    async def move(self, interaction: discord.Interaction, battle_id: str, wine: str, move: str,
                   target: Optional[str] = None):
        await self._submit(interaction, battle_id, {
            "action": "move", "entity_id": wine, "move_id": move, "target_id": target,
        })

    @app_commands.command(name="ability", description="Use your wine's ability")
    async def ability(self, interaction: discord.Interaction, battle_id: str, wine: str):
        await self._submit(interaction, battle_id, {"action": "ability", "entity_id": wine})

    @app_commands.command(name="item", description="Use an item")
    @app_commands.describe(target="Your wine to use it on (defaults to the acting wine)")
    async def item(self, interaction: discord.Interaction, battle_id: str, wine: str, item: str,
                   target: Optional[str] = None):
        await self._submit(interaction, battle_id, {
            "action": "item", "entity_id": wine, "item": item, "target_id": target,
        })

    @app_commands.command(name="switch", description="Send in another wine")
    async def switch(self, interaction: discord.Interaction, battle_id: str, wine: str, switch_to: str):
        await self._submit(interaction, battle_id, {
            "action": "switch", "entity_id": wine, "switch_to": switch_to,
        })

    @app_commands.command(name="forfeit", description="Give up the battle")
    async def forfeit(self, interaction: discord.Interaction, battle_id: str):
        try:
            outcome = self.battle_manager.forfeit_battle(battle_id, interaction.user.id)
        except BattleError as error:
            await self._send_error(interaction, error)
            return
        await interaction.response.send_message(embed=EmbedBuilder.action_result(outcome))


async def setup(bot):
    """Setup function for loading the cog"""
    await bot.add_cog(BattleCog(bot))
