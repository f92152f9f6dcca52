"""Ticket command cog.

Registers the ``/ticket`` command group. Each subcommand loads the branding
file fresh, validates where it was invoked, and hands off to the
``TicketController``.
"""

import logging
from typing import TypeAlias
from collections.abc import Awaitable, Callable

import discord
from discord import app_commands
from discord.ext import commands

from aether_ticket.branding import BrandingConfig, load_branding
from aether_ticket.config import settings
from aether_ticket.database import TicketRepository
from aether_ticket.errors import UserFriendlyError, ValidationError
from aether_ticket.ui.embeds import error_embed

from ._controller import TicketController

GENERIC_FAILURE_MESSAGE = "An error occurred while executing this command. Please try again later."
SERVER_ONLY_MESSAGE = "This command can only be used in a server!"
TICKET_CHANNEL_ONLY_MESSAGE = "This command can only be used in a ticket channel!"

TicketOperation: TypeAlias = Callable[[discord.Interaction, BrandingConfig], Awaitable[None]]


class Tickets(commands.Cog):
    """Cog for creating and managing support ticket channels."""

    ticket_group = app_commands.Group(name="ticket", description="Ticket management commands")

    def __init__(self, bot: commands.Bot, controller: TicketController) -> None:
        """Initialize the Tickets cog."""
        self.bot = bot
        self.controller = controller
        self.branding_path = settings.branding_path
        self.log = logging.getLogger(__name__)
        self.log.info("Tickets cog initialized")

    async def cog_unload(self) -> None:
        """Cancel ticket deletions that are still waiting."""
        self.controller.shutdown()

    @ticket_group.command(name="create", description="Create a new support ticket")
    async def create(self, interaction: discord.Interaction) -> None:
        """Open a private ticket channel for the invoking user."""
        await self._run("create", interaction, self._handle_create, ticket_channel=False, ephemeral=True)

    @ticket_group.command(name="close", description="Close the current ticket")
    async def close(self, interaction: discord.Interaction) -> None:
        """Close the ticket this command is used in."""
        await self._run("close", interaction, self._handle_close)

    @ticket_group.command(name="add", description="Add a user to the current ticket")
    @app_commands.describe(user="The user to add to the ticket")
    async def add(self, interaction: discord.Interaction, user: discord.Member) -> None:
        """Give another user access to the current ticket."""

        async def handle_add(interaction: discord.Interaction, branding: BrandingConfig) -> None:
            embed = await self.controller.add_participant(self._text_channel(interaction), user, branding)
            await self._reply(interaction, embed=embed)

        await self._run("add", interaction, handle_add)

    @ticket_group.command(name="info", description="Get information about the current ticket")
    async def info(self, interaction: discord.Interaction) -> None:
        """Show the stored details of the current ticket."""
        await self._run("info", interaction, self._handle_info)

    async def _handle_create(self, interaction: discord.Interaction, branding: BrandingConfig) -> None:
        guild = interaction.guild
        if guild is None:
            raise ValidationError("Ticket create used outside a guild", SERVER_ONLY_MESSAGE)

        channel = await self.controller.create(guild, interaction.user, branding)
        await self._reply(interaction, content=f"Ticket created: {channel.mention}", ephemeral=True)

    async def _handle_close(self, interaction: discord.Interaction, branding: BrandingConfig) -> None:
        async def echo_notice(notice: discord.Embed) -> None:
            await self._reply(interaction, embed=notice)

        await self.controller.close(self._text_channel(interaction), branding, notify=echo_notice)

    async def _handle_info(self, interaction: discord.Interaction, branding: BrandingConfig) -> None:
        embed = await self.controller.info(self._text_channel(interaction), branding)
        await self._reply(interaction, embed=embed)

    async def _run(
        self,
        subcommand: str,
        interaction: discord.Interaction,
        operation: TicketOperation,
        *,
        ticket_channel: bool = True,
        ephemeral: bool = False,
    ) -> None:
        """Validate the invocation context, then run ``operation`` with fresh branding.

        The interaction is deferred before any Discord or storage work so slow
        operations reply through the followup webhook instead of the initial
        response window. User-friendly errors are shown as-is; anything else is
        logged with the subcommand name and reported as a generic failure. Side
        effects that already happened are not rolled back.
        """
        try:
            self._validate_context(interaction, ticket_channel=ticket_channel)
            await interaction.response.defer(ephemeral=ephemeral, thinking=True)
            branding = load_branding(self.branding_path)
            await operation(interaction, branding)
        except UserFriendlyError as e:
            self.log.info("/ticket %s rejected for user %s: %s", subcommand, interaction.user.id, e)
            await self._report_failure(subcommand, interaction, e.user_message)
        except Exception:
            self.log.exception("Failed to execute ticket %s", subcommand)
            await self._report_failure(subcommand, interaction, GENERIC_FAILURE_MESSAGE)

    async def _report_failure(self, subcommand: str, interaction: discord.Interaction, message: str) -> None:
        try:
            await self._reply(interaction, embed=error_embed(description=message), ephemeral=True)
        except discord.HTTPException as e:
            # The interaction token may have expired or been invalidated
            self.log.warning("Unable to report /ticket %s failure to user %s: %s", subcommand, interaction.user.id, e)

    def _validate_context(self, interaction: discord.Interaction, *, ticket_channel: bool) -> None:
        if interaction.guild is None:
            raise ValidationError("Ticket command used outside a guild", SERVER_ONLY_MESSAGE)

        if ticket_channel and not isinstance(interaction.channel, discord.TextChannel):
            msg = f"Ticket command used in non-text channel {interaction.channel_id}"
            raise ValidationError(msg, TICKET_CHANNEL_ONLY_MESSAGE)

    @staticmethod
    def _text_channel(interaction: discord.Interaction) -> discord.TextChannel:
        channel = interaction.channel
        if not isinstance(channel, discord.TextChannel):
            msg = f"Ticket command used in non-text channel {interaction.channel_id}"
            raise ValidationError(msg, TICKET_CHANNEL_ONLY_MESSAGE)
        return channel

    async def _reply(
        self,
        interaction: discord.Interaction,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        ephemeral: bool = False,
    ) -> None:
        kwargs: dict = {"content": content, "ephemeral": ephemeral}
        if embed is not None:
            kwargs["embed"] = embed

        if interaction.response.is_done():
            await interaction.followup.send(**kwargs)
        else:
            await interaction.response.send_message(**kwargs)


async def setup(bot: commands.Bot) -> None:
    """Set up the Tickets cog."""
    repository = getattr(bot, "ticket_repository", None) or TicketRepository(settings.database_path)
    controller = TicketController(
        bot,
        repository,
        close_delay=settings.ticket_close_delay_seconds,
        transcript_limit=settings.transcript_message_limit,
    )
    await bot.add_cog(Tickets(bot, controller))
