"""Standard embed factory functions and branded ticket templates."""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord

if TYPE_CHECKING:
    from datetime import datetime

    from aether_ticket.branding import BrandingConfig
    from aether_ticket.database import TicketRecord

# Standard colors for different embed types
STATUS_ERROR = discord.Color.red()
STATUS_SUCCESS = discord.Color.green()
STATUS_INFO = discord.Color.blue()
STATUS_WARNING = discord.Color.yellow()


def error_embed(
    title: str = "❌ Error",
    description: str | None = None,
) -> discord.Embed:
    """Create an error embed.

    Args:
        title: The embed title
        description: Optional description

    Returns:
        A red embed describing the failure
    """
    return discord.Embed(title=title, description=description, color=STATUS_ERROR)


def success_embed(title: str, description: str | None = None) -> discord.Embed:
    """Create a green success embed."""
    return discord.Embed(title=title, description=description, color=STATUS_SUCCESS)


def info_embed(title: str, description: str | None = None) -> discord.Embed:
    """Create a blue informational embed."""
    return discord.Embed(title=title, description=description, color=STATUS_INFO)


def warning_embed(title: str, description: str | None = None) -> discord.Embed:
    """Create a yellow warning embed."""
    return discord.Embed(title=title, description=description, color=STATUS_WARNING)


def ticket_embed(title: str, description: str | None, branding: BrandingConfig) -> discord.Embed:
    """Create an embed carrying the configured color, footer and the current time.

    Args:
        title: The embed title
        description: Optional description
        branding: Branding snapshot for the current command

    Returns:
        A branded embed used by every ticket message
    """
    embed = discord.Embed(
        title=title,
        description=description,
        color=branding.color,
        timestamp=discord.utils.utcnow(),
    )
    embed.set_footer(text=branding.footer_text or None)
    return embed


def ticket_created_embed(user: discord.abc.User, branding: BrandingConfig) -> discord.Embed:
    """Welcome message posted into a new ticket channel."""
    return ticket_embed(
        "Support Ticket Created",
        f"Hello {user.mention}, welcome to your support ticket!\n\n"
        "Please describe your issue and a staff member will assist you shortly.",
        branding,
    )


def ticket_closed_embed(branding: BrandingConfig, delay_seconds: float) -> discord.Embed:
    """Notice announcing that the ticket channel is about to be removed."""
    return ticket_embed(
        "Ticket Closed",
        f"This ticket has been closed. The channel will be deleted in {delay_seconds:g} seconds.",
        branding,
    )


def user_added_embed(user: discord.abc.User, branding: BrandingConfig) -> discord.Embed:
    """Confirmation that a participant was added to the ticket."""
    return ticket_embed("User Added to Ticket", f"{user.mention} has been added to this ticket.", branding)


def ticket_info_embed(
    record: TicketRecord,
    owner: discord.abc.User | None,
    branding: BrandingConfig,
) -> discord.Embed:
    """Read-only summary of a ticket record."""
    owner_value = f"{owner} ({owner.id})" if owner else f"Unknown user ({record.user_id})"

    embed = ticket_embed("Ticket Information", None, branding)
    embed.add_field(name="Ticket ID", value=str(record.id), inline=True)
    embed.add_field(name="Channel ID", value=record.channel_id, inline=True)
    embed.add_field(name="Created By", value=owner_value, inline=False)
    embed.add_field(name="Created At", value=_format_time(record.created_at), inline=True)
    embed.add_field(name="Status", value="Closed" if record.is_closed else "Open", inline=True)

    if record.closed_at is not None:
        embed.add_field(name="Closed At", value=_format_time(record.closed_at), inline=True)

    return embed


def _format_time(value: datetime | None) -> str:
    if value is None:
        return "Unknown"
    return discord.utils.format_dt(value, style="f")
