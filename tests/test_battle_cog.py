import unittest
from types import SimpleNamespace

from battle_errors import ConflictError, NotFoundError, ValidationError
from battle_state import BattleSession, BattleSnapshot, BattleStatus
from cogs.battle_cog import BattleCog, is_admin, parse_id_list
from ui.embeds import EmbedBuilder


class DummyBot(SimpleNamespace):
    pass


class DummyPlayerManager:
    def __init__(self, names):
        self.names = names

    def get_entity(self, entity_id):
        if entity_id not in self.names:
            raise NotFoundError(f"Wine {entity_id} not found")
        return SimpleNamespace(entity_id=entity_id, name=self.names[entity_id])


class BattleCogHelperTests(unittest.TestCase):
    def setUp(self):
        self.bot = DummyBot(player_manager=DummyPlayerManager({"w1": "Barolo"}), battle_manager=object())
        self.cog = BattleCog(bot=self.bot)

    def test_wine_lists_accept_commas_and_spaces(self):
        self.assertEqual(parse_id_list("w1, w2 w3,,w4"), ["w1", "w2", "w3", "w4"])
        self.assertEqual(parse_id_list("   "), [])

    def test_known_error_kinds_get_friendly_text(self):
        error = ValidationError("Not user 5's turn", ValidationError.NOT_YOUR_TURN)
        self.assertEqual(self.cog.describe_error(error), "It's not your turn!")
        self.assertIn("try again", self.cog.describe_error(ConflictError("stale")))

    def test_other_errors_show_their_message(self):
        error = ValidationError("Choose 1-6 wines", ValidationError.MALFORMED_ACTION)
        self.assertEqual(self.cog.describe_error(error), "Choose 1-6 wines")

    def test_entity_name_falls_back_to_id(self):
        self.assertEqual(self.cog.entity_name("w1"), "Barolo")
        self.assertEqual(self.cog.entity_name("w9"), "w9")

    def test_manager_comes_from_bot(self):
        self.assertIs(self.cog.battle_manager, self.bot.battle_manager)

    def test_admin_check(self):
        admin = SimpleNamespace(user=SimpleNamespace(guild_permissions=SimpleNamespace(administrator=True)))
        member = SimpleNamespace(user=SimpleNamespace(guild_permissions=SimpleNamespace(administrator=False)))
        direct_message = SimpleNamespace(user=SimpleNamespace())

        self.assertTrue(is_admin(admin))
        self.assertFalse(is_admin(member))
        self.assertFalse(is_admin(direct_message))


class EmbedTests(unittest.TestCase):
    def test_hp_bar(self):
        self.assertEqual(EmbedBuilder._hp_bar(50, 100), "█████░░░░░")
        self.assertEqual(EmbedBuilder._hp_bar(0, 100), "░" * 10)
        self.assertEqual(EmbedBuilder._hp_bar(10, 0), "░" * 10)

    def test_error_embed(self):
        embed = EmbedBuilder.error("Nope")
        self.assertEqual(embed.description, "❌ Nope")

    def test_type_emoji(self):
        self.assertEqual(EmbedBuilder.type_emoji("Terroir"), "🌍")
        self.assertEqual(EmbedBuilder.type_emoji("flow"), "🌊")
        self.assertEqual(EmbedBuilder.type_emoji(None), "🍷")

    def test_cancelled_battle_uses_warning_colour(self):
        session = BattleSession(battle_id="b1", initiator_id=1, category="TerroirChallenge",
                                initiator_roster=["w1"], status=BattleStatus.CANCELLED)
        embed = EmbedBuilder.battle_status(BattleSnapshot(session=session, state=None))
        self.assertEqual(embed.color, EmbedBuilder.WARNING_COLOR)

    def test_actions_embed_shows_wine_type(self):
        actions = {"entities": {"w1": {"name": "Barolo", "category": "Terroir", "moves": ["basic_strike"]}},
                   "targets": []}
        embed = EmbedBuilder.available_actions(actions, lambda entity_id: entity_id)
        self.assertEqual(embed.fields[0].name, "🌍 Barolo (`w1`)")


if __name__ == '__main__':
    unittest.main()
