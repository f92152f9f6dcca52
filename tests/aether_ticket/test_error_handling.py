from unittest.mock import AsyncMock, MagicMock, PropertyMock, patch

import discord
import pytest
from discord import app_commands
from discord.ext import commands

from aether_ticket.bot import Bot
from aether_ticket.branding import BrandingConfig
from aether_ticket.errors import UserFriendlyError
from aether_ticket.exts.tickets.ticket import Tickets


@pytest.fixture
def bot():
    intents = discord.Intents.default()
    b = Bot(command_prefix="!", intents=intents)
    b.log = MagicMock()
    return b


def _interaction(*, is_done=False):
    interaction = MagicMock(spec=discord.Interaction)
    interaction.response = MagicMock()
    interaction.response.send_message = AsyncMock()
    interaction.response.is_done.return_value = is_done
    interaction.followup = MagicMock()
    interaction.followup.send = AsyncMock()
    return interaction


@pytest.mark.asyncio
async def test_on_tree_error_user_friendly(bot):
    interaction = _interaction()

    error = UserFriendlyError("Internal", "User Message")
    # app_commands.CommandInvokeError wraps the actual error
    invoke_error = app_commands.CommandInvokeError(MagicMock(), error)

    await bot.on_tree_error(interaction, invoke_error)

    interaction.response.send_message.assert_called_once()
    args, kwargs = interaction.response.send_message.call_args
    embed = kwargs.get("embed") or args[0]
    assert embed.description == "User Message"
    assert kwargs.get("ephemeral") is True


@pytest.mark.asyncio
async def test_on_tree_error_generic(bot):
    interaction = _interaction()
    interaction.command = MagicMock()
    interaction.command.module = "aether_ticket.exts.tickets.ticket"

    invoke_error = app_commands.CommandInvokeError(MagicMock(), Exception("Unexpected"))

    with patch("logging.getLogger") as mock_get_logger:
        mock_logger = MagicMock()
        mock_get_logger.return_value = mock_logger
        await bot.on_tree_error(interaction, invoke_error)
        mock_get_logger.assert_called_with("aether_ticket.exts.tickets.ticket")
        mock_logger.exception.assert_called_once()

    interaction.response.send_message.assert_called_once()
    args, kwargs = interaction.response.send_message.call_args
    embed = kwargs.get("embed") or args[0]
    assert "error while executing this command" in embed.description


@pytest.mark.asyncio
async def test_on_tree_error_is_done(bot):
    interaction = _interaction(is_done=True)

    invoke_error = app_commands.CommandInvokeError(MagicMock(), UserFriendlyError("Internal", "User Message"))

    await bot.on_tree_error(interaction, invoke_error)

    interaction.followup.send.assert_called_once()
    args, kwargs = interaction.followup.send.call_args
    embed = kwargs.get("embed") or args[0]
    assert embed.description == "User Message"
    assert kwargs.get("ephemeral") is True


@pytest.mark.asyncio
async def test_on_tree_error_fallback_logger(bot):
    interaction = _interaction()
    interaction.command = None

    invoke_error = app_commands.CommandInvokeError(MagicMock(), Exception("Unexpected"))

    await bot.on_tree_error(interaction, invoke_error)

    bot.log.exception.assert_called_once()


@pytest.mark.asyncio
async def test_apply_branding_updates_name_and_avatar(bot, tmp_path):
    avatar = tmp_path / "avatar.png"
    avatar.write_bytes(b"\x89PNG fake")
    user = MagicMock()
    user.name = "OldName"
    user.edit = AsyncMock()

    with patch.object(Bot, "user", new_callable=PropertyMock, return_value=user):
        await bot.apply_branding(BrandingConfig(botName="Helper", avatar=str(avatar)))

    user.edit.assert_awaited_once_with(username="Helper", avatar=b"\x89PNG fake")


@pytest.mark.asyncio
async def test_apply_branding_skips_unchanged_name_and_missing_avatar(bot, tmp_path):
    user = MagicMock()
    user.name = "Helper"
    user.edit = AsyncMock()

    with patch.object(Bot, "user", new_callable=PropertyMock, return_value=user):
        await bot.apply_branding(BrandingConfig(botName="Helper", avatar=str(tmp_path / "missing.png")))

    user.edit.assert_not_awaited()


@pytest.mark.asyncio
async def test_apply_branding_failure_is_logged(bot):
    user = MagicMock()
    user.name = "OldName"
    user.edit = AsyncMock(side_effect=discord.HTTPException(MagicMock(status=429, reason="Too Many"), "slow"))

    with patch.object(Bot, "user", new_callable=PropertyMock, return_value=user):
        await bot.apply_branding(BrandingConfig(botName="Helper"))

    bot.log.exception.assert_called_once()


@pytest.mark.asyncio
async def test_sync_commands_targets_debug_guild(bot):
    tree = MagicMock()
    tree.sync = AsyncMock(return_value=[MagicMock()])

    with (
        patch.object(Bot, "tree", new_callable=PropertyMock, return_value=tree),
        patch("aether_ticket.bot.settings") as mock_settings,
    ):
        mock_settings.debug_guild_id = 123
        await bot.sync_commands()

    tree.copy_global_to.assert_called_once()
    assert tree.sync.await_args.kwargs["guild"].id == 123


@pytest.mark.asyncio
async def test_sync_commands_globally_without_debug_guild(bot):
    tree = MagicMock()
    tree.sync = AsyncMock(return_value=[])

    with (
        patch.object(Bot, "tree", new_callable=PropertyMock, return_value=tree),
        patch("aether_ticket.bot.settings") as mock_settings,
    ):
        mock_settings.debug_guild_id = None
        await bot.sync_commands()

    tree.sync.assert_awaited_once_with()
    tree.copy_global_to.assert_not_called()


@pytest.mark.asyncio
async def test_close_cancels_pending_ticket_deletions(bot):
    cog = MagicMock(spec=Tickets)
    cog.controller = MagicMock()

    with (
        patch.object(Bot, "get_cog", return_value=cog) as get_cog,
        patch.object(commands.AutoShardedBot, "close", new_callable=AsyncMock) as parent_close,
    ):
        await bot.close()

    get_cog.assert_called_once_with("Tickets")
    cog.controller.shutdown.assert_called_once()
    parent_close.assert_awaited_once()


@pytest.mark.asyncio
async def test_close_without_ticket_cog_still_disconnects(bot):
    with (
        patch.object(Bot, "get_cog", return_value=None),
        patch.object(commands.AutoShardedBot, "close", new_callable=AsyncMock) as parent_close,
    ):
        await bot.close()

    parent_close.assert_awaited_once()
