"""Shared helpers for bot startup."""

# Extensions loaded at startup. Listed explicitly so the set of commands is fixed.
EXTENSIONS: tuple[str, ...] = ("aether_ticket.exts.tickets.ticket",)
