"""
Embed Builders - Creates Discord embeds for battle screens
"""

from typing import Callable, Dict, List, Optional

import discord

from battle_state import BattleSession, BattleSnapshot, BattleStatus, ResolvedOutcome


class EmbedBuilder:
    """Builds Discord embeds for the bot"""

    # Color scheme
    PRIMARY_COLOR = discord.Color.dark_red()
    SUCCESS_COLOR = discord.Color.green()
    ERROR_COLOR = discord.Color.red()
    WARNING_COLOR = discord.Color.orange()
    INFO_COLOR = discord.Color.blurple()

    TYPE_EMOJIS = {
        "terroir": "🌍",
        "varietal": "🍇",
        "technique": "⚙️",
        "heritage": "🏛️",
        "modern": "🧪",
        "mystical": "🔮",
        "energy": "⚡",
        "flow": "🌊",
    }

    STATUS_LABELS = {
        BattleStatus.WAITING: "⏳ Waiting for opponent",
        BattleStatus.IN_PROGRESS: "⚔️ In progress",
        BattleStatus.COMPLETED: "🏆 Completed",
        BattleStatus.CANCELLED: "🚫 Cancelled",
    }

    @staticmethod
    def _hp_bar(current: int, maximum: int, length: int = 10) -> str:
        if maximum <= 0:
            return "░" * length
        filled = max(0, min(length, round(length * current / maximum)))
        return "█" * filled + "░" * (length - filled)

    @staticmethod
    def type_emoji(category: Optional[str]) -> str:
        return EmbedBuilder.TYPE_EMOJIS.get((category or "").lower(), "🍷")

    @staticmethod
    def error(message: str) -> discord.Embed:
        return discord.Embed(description=f"❌ {message}", color=EmbedBuilder.ERROR_COLOR)

    @staticmethod
    def battle_created(session: BattleSession) -> discord.Embed:
        embed = discord.Embed(
            title="🍷 Battle Created",
            description=(
                f"<@{session.initiator_id}> opened a **{session.category}** battle "
                f"with {len(session.initiator_roster)} wine(s)."
            ),
            color=EmbedBuilder.PRIMARY_COLOR,
        )
        embed.add_field(name="Battle ID", value=f"`{session.battle_id}`", inline=False)
        if session.challenger_id:
            embed.add_field(name="Challenger", value=f"<@{session.challenger_id}>", inline=True)
        if session.entry_fee:
            embed.add_field(name="Entry Fee", value=f"{session.entry_fee:,}", inline=True)
        embed.set_footer(text="Join with /battle join")
        return embed

    @staticmethod
    def battle_status(snapshot: BattleSnapshot,
                      entity_name: Optional[Callable[[str], str]] = None) -> discord.Embed:
        """Full battle screen: both rosters, turn holder and the last few log entries"""
        session, state = snapshot.session, snapshot.state
        entity_name = entity_name or (lambda entity_id: entity_id)

        embed = discord.Embed(
            title=f"⚔️ {session.category}",
            description=EmbedBuilder.STATUS_LABELS.get(session.status, session.status.value),
            color=EmbedBuilder.PRIMARY_COLOR,
        )
        if session.status == BattleStatus.CANCELLED:
            embed.color = EmbedBuilder.WARNING_COLOR

        sides = [(session.initiator_id, session.initiator_roster)]
        if session.participant_id is not None:
            sides.append((session.participant_id, session.participant_roster))

        for user_id, roster in sides:
            lines = []
            for entity_id in roster:
                name = entity_name(entity_id)
                if state is None:
                    lines.append(name)
                    continue
                current = state.current_hp(entity_id)
                maximum = state.max_hit_points.get(entity_id, 0)
                marker = "💀" if current <= 0 else "🍷"
                lines.append(f"{marker} {name} `{EmbedBuilder._hp_bar(current, maximum)}` {current}/{maximum}")
            embed.add_field(name=f"Team of <@{user_id}>", value="\n".join(lines) or "-", inline=False)

        if state is not None:
            if state.result is not None:
                winner = f"<@{state.result.winner_id}>" if state.result.winner_id else "Nobody (draw)"
                embed.add_field(name="Result", value=f"{winner} ({state.result.reason})", inline=False)
            else:
                embed.add_field(name="Turn", value=f"{state.turn_number + 1}: <@{state.current_turn_holder}>", inline=True)
            weather = state.field_modifiers.get('weather')
            if weather:
                embed.add_field(name="Weather", value=str(weather), inline=True)

            recent = state.log[-5:]
            if recent:
                embed.add_field(
                    name="Recent Events",
                    value="\n".join(entry.outcome.get('message', entry.action) for entry in recent),
                    inline=False,
                )

        embed.set_footer(text=f"Battle ID: {session.battle_id}")
        return embed

    @staticmethod
    def action_result(outcome: ResolvedOutcome) -> discord.Embed:
        color = EmbedBuilder.SUCCESS_COLOR if outcome.battle_ended else EmbedBuilder.INFO_COLOR
        embed = discord.Embed(description=outcome.message, color=color)
        if outcome.battle_ended:
            if outcome.winner_id:
                embed.add_field(name="🏆 Winner", value=f"<@{outcome.winner_id}>", inline=False)
            elif outcome.end_reason:
                embed.add_field(name="Result", value="Draw", inline=False)
        return embed

    @staticmethod
    def battle_list(sessions: List[BattleSession], title: str = "🍷 Open Battles") -> discord.Embed:
        embed = discord.Embed(title=title, color=EmbedBuilder.INFO_COLOR)
        if not sessions:
            embed.description = "No battles found."
            return embed

        for session in sessions[:10]:
            opponent = f" vs <@{session.participant_id}>" if session.participant_id else ""
            embed.add_field(
                name=f"{session.category} · {EmbedBuilder.STATUS_LABELS.get(session.status, session.status.value)}",
                value=f"<@{session.initiator_id}>{opponent}\n`{session.battle_id}`",
                inline=False,
            )
        return embed

    @staticmethod
    def available_actions(actions: Dict, entity_name: Callable[[str], str]) -> discord.Embed:
        embed = discord.Embed(title="Your options", color=EmbedBuilder.INFO_COLOR)
        for entity_id, info in actions.get('entities', {}).items():
            lines = [f"Moves: {', '.join(info['moves'])}"]
            if info.get('ability'):
                lines.append(f"Ability: {info['ability']}")
            emoji = EmbedBuilder.type_emoji(info.get('category'))
            embed.add_field(name=f"{emoji} {info['name']} (`{entity_id}`)", value="\n".join(lines), inline=False)
        targets = actions.get('targets') or []
        if targets:
            embed.add_field(
                name="Targets",
                value="\n".join(f"{entity_name(eid)} (`{eid}`)" for eid in targets),
                inline=False,
            )
        return embed
