import logging
from pathlib import Path

import discord
from discord import app_commands
from discord.ext import commands

from aether_ticket.branding import BrandingConfig, load_branding
from aether_ticket.config import settings
from aether_ticket.database import TicketRepository
from aether_ticket.errors import StorageInitError, UserFriendlyError
from aether_ticket.exts.tickets.ticket import Tickets
from aether_ticket.ui.embeds import error_embed
from aether_ticket.utils import EXTENSIONS

ACTIVITY_NAME = "Managing tickets"
TICKETS_COG_NAME = "Tickets"


class Bot(commands.AutoShardedBot):
    """Bot class for AetherTicket."""

    ticket_repository: TicketRepository

    async def setup_hook(self) -> None:
        """Run before the bot starts."""
        self.log = logging.getLogger(__name__)
        self.ticket_repository = TicketRepository(settings.database_path)
        try:
            await self.ticket_repository.initialize()
        except StorageInitError:
            # The repository retries schema creation on first use
            self.log.exception("Failed to initialize ticket database")
        else:
            self.log.info("Ticket database initialized at %s", settings.database_path)

        self.tree.on_error = self.on_tree_error  # type: ignore
        await self.load_extensions()
        await self.sync_commands()

    async def on_ready(self) -> None:
        """Apply branding once the gateway session is ready."""
        self.log.info("Logged in as %s", self.user)
        await self.apply_branding(load_branding(settings.branding_path))
        await self.change_presence(activity=discord.Activity(type=discord.ActivityType.watching, name=ACTIVITY_NAME))
        self.log.info("AetherTicket ready!")

    async def close(self) -> None:
        """Cancel pending ticket deletions, then disconnect."""
        cog = self.get_cog(TICKETS_COG_NAME)
        if isinstance(cog, Tickets):
            cog.controller.shutdown()
        await super().close()

    async def apply_branding(self, branding: BrandingConfig) -> None:
        """Set the bot's username and avatar from the branding config."""
        if self.user is None:
            return

        changes: dict[str, str | bytes] = {}
        if branding.bot_name and branding.bot_name != self.user.name:
            changes["username"] = branding.bot_name

        avatar_path = Path(branding.avatar)
        if avatar_path.is_file():
            try:
                changes["avatar"] = avatar_path.read_bytes()
            except OSError as e:
                self.log.warning("Failed to read avatar %s: %s", avatar_path, e)

        if not changes:
            return

        try:
            await self.user.edit(**changes)  # type: ignore[arg-type]
        except (discord.HTTPException, ValueError):
            self.log.exception("Failed to set bot name/avatar")
        else:
            self.log.info("Applied branding: %s", ", ".join(changes))

    async def sync_commands(self) -> None:
        """Register application commands, scoped to the debug guild when one is configured."""
        try:
            if settings.debug_guild_id:
                guild = discord.Object(id=settings.debug_guild_id)
                self.tree.copy_global_to(guild=guild)
                synced = await self.tree.sync(guild=guild)
                self.log.info("Synced %d commands to guild %s", len(synced), settings.debug_guild_id)
            else:
                synced = await self.tree.sync()
                self.log.info("Synced %d commands globally", len(synced))
        except discord.HTTPException:
            self.log.exception("Failed to sync application commands")

    def _get_logger_for_command(
        self, command: app_commands.Command | app_commands.ContextMenu | commands.Command | None
    ) -> logging.Logger:
        if command and hasattr(command, "module") and command.module:
            return logging.getLogger(command.module)
        return self.log

    async def on_tree_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError) -> None:
        """Handle errors in slash commands."""
        # Unpack CommandInvokeError to get the original exception
        actual_error = error
        if isinstance(error, app_commands.CommandInvokeError):
            actual_error = error.original

        if isinstance(actual_error, UserFriendlyError):
            embed = error_embed(description=actual_error.user_message)
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
            return

        # Generic error handling
        logger = self._get_logger_for_command(interaction.command)
        logger.exception("Slash command error: %s", error)
        embed = error_embed(description="There was an error while executing this command!")
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=True)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=True)

    async def load_extensions(self) -> None:
        """Load all enabled extensions."""
        for extension in EXTENSIONS:
            try:
                await self.load_extension(extension)
                self.log.info("Loaded extension: %s", extension)
            except Exception:
                self.log.exception("Failed to load extension: %s", extension)
