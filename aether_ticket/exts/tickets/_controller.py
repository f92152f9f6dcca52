"""Ticket lifecycle operations.

The controller drives Discord side effects and keeps the ticket repository in
step with them. Side effects are at-least-once: nothing is rolled back when a
later step fails, and the repository is healed lazily by reconciling channels
that follow the ``ticket-<user id>`` naming convention.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterator
from datetime import datetime
from typing import TypeAlias

import discord
from discord.ext import commands

from aether_ticket.branding import BrandingConfig
from aether_ticket.database import TicketRecord, TicketRepository
from aether_ticket.errors import (
    DuplicateChannelError,
    DuplicateTicketError,
    GatewayError,
    NotATicketError,
    PermissionDeniedError,
    StorageError,
)
from aether_ticket.ui import embeds

from . import (
    CLOSE_DELAY_SECONDS,
    DELETE_FALLBACK_MESSAGE,
    DELETE_REASON,
    TRANSCRIPT_FAILURE_PLACEHOLDER,
    TRANSCRIPT_MESSAGE_LIMIT,
    TRANSCRIPT_PERMISSION_PLACEHOLDER,
)
from ._lifecycle import TicketAction, parse_ticket_owner, state_of, ticket_channel_name, transition

# Permissions granted to the ticket owner, the support role and added participants
PARTICIPANT_PERMISSIONS = {"view_channel": True, "send_messages": True, "read_message_history": True}

NoticeCallback: TypeAlias = Callable[[discord.Embed], Awaitable[None]]


@contextlib.contextmanager
def gateway_call(action: str) -> Iterator[None]:
    """Translate Discord API failures raised inside the block into ``GatewayError``."""
    try:
        yield
    except discord.HTTPException as e:
        msg = f"Discord API call failed while trying to {action}"
        raise GatewayError(msg) from e


def require_permission(channel: discord.TextChannel, permission: str) -> None:
    """Check that the bot holds ``permission`` in ``channel``.

    Raises:
        PermissionDeniedError: If the bot's effective permissions lack it.
    """
    permissions = channel.permissions_for(channel.guild.me)
    if not getattr(permissions, permission):
        raise PermissionDeniedError(permission, channel.id)


class TicketController:
    """Implements ticket creation, closing, participant management and info lookups."""

    def __init__(
        self,
        bot: commands.Bot,
        repository: TicketRepository,
        *,
        close_delay: float = CLOSE_DELAY_SECONDS,
        transcript_limit: int = TRANSCRIPT_MESSAGE_LIMIT,
    ) -> None:
        """Initialize the controller.

        Args:
            bot: Bot used to resolve users by id.
            repository: Store holding one record per ticket channel.
            close_delay: Seconds between the closing notice and channel deletion.
            transcript_limit: Maximum number of messages kept in a transcript.
        """
        self.bot = bot
        self.repository = repository
        self.close_delay = close_delay
        self.transcript_limit = transcript_limit
        self.log = logging.getLogger(__name__)
        self._pending_deletions: set[asyncio.Task[None]] = set()

    # ========================================================================================
    # CREATE
    # ========================================================================================

    async def create(
        self,
        guild: discord.Guild,
        user: discord.Member | discord.User,
        branding: BrandingConfig,
    ) -> discord.TextChannel:
        """Open a private ticket channel for ``user``.

        Returns:
            The new ticket channel.

        Raises:
            DuplicateTicketError: If the user already has an open ticket channel.
            GatewayError: If the category or the ticket channel cannot be created.
        """
        category = await self._resolve_category(guild, branding.ticket_category)
        channel_name = ticket_channel_name(user.id)

        # A closed ticket channel can linger next to a newer open one with the same name
        for existing in category.text_channels:
            if existing.name == channel_name and await self._is_live_duplicate(existing):
                raise DuplicateTicketError(user.id, existing.mention)

        overwrites: dict[discord.Role | discord.Member | discord.User, discord.PermissionOverwrite] = {
            guild.default_role: discord.PermissionOverwrite(view_channel=False),
            user: discord.PermissionOverwrite(**PARTICIPANT_PERMISSIONS),
        }
        with gateway_call(f"create ticket channel {channel_name}"):
            channel = await guild.create_text_channel(
                channel_name,
                category=category,
                overwrites=overwrites,  # type: ignore[arg-type]
                reason=f"Support ticket for {user} ({user.id})",
            )

        await self._grant_support_role(guild, channel, branding.support_role)

        with gateway_call("send the ticket welcome message"):
            await channel.send(embed=embeds.ticket_created_embed(user, branding))
            await channel.send(user.mention)

        try:
            await self.repository.create(channel.id, user.id)
        except StorageError:
            # The channel stays; reconciliation recreates the record on first use.
            self.log.exception("Failed to persist ticket record for channel %s", channel.id)

        self.log.info("Ticket created: %s for user %s", channel.id, user.id)
        return channel

    async def _resolve_category(self, guild: discord.Guild, name: str) -> discord.CategoryChannel:
        category = discord.utils.get(guild.categories, name=name)
        if category is not None:
            return category

        with gateway_call(f"create ticket category {name!r}"):
            category = await guild.create_category(name, reason="Ticket category")
        self.log.info("Created ticket category: %s", name)
        return category

    async def _is_live_duplicate(self, channel: discord.TextChannel) -> bool:
        """Whether an existing ``ticket-<id>`` channel still belongs to an open ticket."""
        try:
            record = await self.repository.get(channel.id)
        except StorageError:
            self.log.warning(
                "Ticket lookup failed for channel %s, falling back to the channel name check",
                channel.id,
                exc_info=True,
            )
            return True

        return record is not None and record.is_open

    async def _grant_support_role(self, guild: discord.Guild, channel: discord.TextChannel, role_name: str) -> None:
        if not role_name:
            return

        role = discord.utils.get(guild.roles, name=role_name)
        if role is None:
            self.log.debug("Support role %r not found in guild %s", role_name, guild.id)
            return

        try:
            await channel.set_permissions(role, reason="Support role access", **PARTICIPANT_PERMISSIONS)
        except discord.HTTPException as e:
            self.log.warning("Failed to grant support role %s access to %s: %s", role.id, channel.id, e)

    # ========================================================================================
    # LOOKUP / RECONCILIATION
    # ========================================================================================

    async def resolve_ticket(self, channel: discord.TextChannel) -> TicketRecord:
        """Return the ticket record for ``channel``, reconciling a missing one from the channel name.

        Raises:
            NotATicketError: If there is no record and the channel is not named like a ticket.
            StorageReadError: If the repository lookup fails.
        """
        record = await self.repository.get(channel.id)
        if record is not None:
            return record

        owner_id = parse_ticket_owner(channel.name)
        if owner_id is None:
            raise NotATicketError(channel.id)

        self.log.warning("Reconciling missing ticket record for channel %s (owner %s)", channel.id, owner_id)
        try:
            await self.repository.create(channel.id, owner_id)
        except DuplicateChannelError:
            self.log.debug("Ticket record for channel %s was created concurrently", channel.id)
        except StorageError:
            self.log.exception("Failed to reconcile ticket record for channel %s", channel.id)

        record = await self.repository.get(channel.id)
        if record is None:
            raise NotATicketError(channel.id)
        return record

    # ========================================================================================
    # CLOSE
    # ========================================================================================

    async def close(
        self,
        channel: discord.TextChannel,
        branding: BrandingConfig,
        *,
        notify: NoticeCallback | None = None,
    ) -> discord.Embed:
        """Close the ticket in ``channel`` and schedule the channel for deletion.

        Args:
            channel: The ticket channel being closed.
            branding: Branding snapshot for the closing notice.
            notify: Called with the closing notice right after it is posted in
                the channel, before the record is persisted and deletion is scheduled.

        Returns:
            The closing notice.
        """
        record = await self.resolve_ticket(channel)
        transition(state_of(record), TicketAction.CLOSE)

        transcript = await self.build_transcript(channel)

        notice = embeds.ticket_closed_embed(branding, self.close_delay)
        with gateway_call("send the closing notice"):
            await channel.send(embed=notice)

        if notify is not None:
            try:
                await notify(notice)
            except discord.HTTPException as e:
                self.log.warning("Failed to echo closing notice for channel %s: %s", channel.id, e)

        try:
            await self.repository.close(channel.id, transcript)
        except StorageError:
            self.log.exception("Failed to persist closed ticket %s", channel.id)

        self.log.info("Ticket closed: %s", channel.id)
        self._schedule_deletion(channel)
        return notice

    async def build_transcript(self, channel: discord.TextChannel) -> str:
        """Render the most recent messages of ``channel``, oldest first.

        Never raises: a placeholder is returned when history cannot be read.
        """
        try:
            require_permission(channel, "read_message_history")
        except PermissionDeniedError as e:
            self.log.warning("Skipping transcript: %s", e)
            return TRANSCRIPT_PERMISSION_PLACEHOLDER

        try:
            messages = [message async for message in channel.history(limit=self.transcript_limit)]
        except discord.HTTPException as e:
            self.log.warning("Failed to fetch transcript for channel %s: %s", channel.id, e)
            return TRANSCRIPT_FAILURE_PLACEHOLDER

        # History is returned newest first
        messages.reverse()
        return "\n".join(
            f"[{_iso_timestamp(message.created_at)}] {message.author}: {message.content}" for message in messages
        )

    def _schedule_deletion(self, channel: discord.TextChannel) -> None:
        task = asyncio.create_task(self.delete_after_delay(channel), name=f"ticket-delete-{channel.id}")
        self._pending_deletions.add(task)
        task.add_done_callback(self._pending_deletions.discard)

    async def delete_after_delay(self, channel: discord.TextChannel) -> None:
        """Delete a closed ticket channel once the close delay has elapsed.

        Falls back to asking for manual deletion when the bot cannot delete the
        channel. Not retried.
        """
        await asyncio.sleep(self.close_delay)

        try:
            require_permission(channel, "manage_channels")
            await channel.delete(reason=DELETE_REASON)
        except (PermissionDeniedError, discord.HTTPException) as e:
            self.log.warning("Failed to delete ticket channel %s: %s", channel.id, e)
            await self._post_delete_fallback(channel)
            return

        self.log.info("Ticket channel deleted: %s", channel.id)

    async def _post_delete_fallback(self, channel: discord.TextChannel) -> None:
        try:
            await channel.send(DELETE_FALLBACK_MESSAGE)
        except discord.HTTPException as e:
            self.log.warning("Failed to post deletion fallback in channel %s: %s", channel.id, e)

    def shutdown(self) -> None:
        """Cancel deletions that have not run yet."""
        for task in self._pending_deletions:
            task.cancel()
        if self._pending_deletions:
            self.log.warning("Cancelled %d pending ticket deletion(s)", len(self._pending_deletions))
        self._pending_deletions.clear()

    # ========================================================================================
    # ADD PARTICIPANT / INFO
    # ========================================================================================

    async def add_participant(
        self,
        channel: discord.TextChannel,
        member: discord.Member | discord.User,
        branding: BrandingConfig,
    ) -> discord.Embed:
        """Give ``member`` access to the ticket in ``channel``.

        Returns:
            The confirmation embed, to be echoed to the invoking user.
        """
        record = await self.resolve_ticket(channel)
        transition(state_of(record), TicketAction.ADD_PARTICIPANT)

        with gateway_call(f"add user {member.id} to ticket {channel.id}"):
            await channel.set_permissions(member, reason="Added to ticket", **PARTICIPANT_PERMISSIONS)
            await channel.send(f"{member.mention} has been added to this ticket.")

        self.log.info("User %s added to ticket %s", member.id, channel.id)
        return embeds.user_added_embed(member, branding)

    async def info(self, channel: discord.TextChannel, branding: BrandingConfig) -> discord.Embed:
        """Summarize the ticket in ``channel``."""
        record = await self.resolve_ticket(channel)

        owner_id = int(record.user_id)
        owner = self.bot.get_user(owner_id)
        if owner is None:
            with gateway_call(f"fetch ticket owner {owner_id}"):
                owner = await self.bot.fetch_user(owner_id)

        return embeds.ticket_info_embed(record, owner, branding)


def _iso_timestamp(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
