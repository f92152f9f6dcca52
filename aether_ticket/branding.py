"""Branding configuration shared by the ticket commands and the config panel.

The branding file is a small JSON document edited by the operator panel. It is
loaded fresh before every command so edits take effect without a restart, and
every value passes through the same sanitizers whether it comes from disk or
from the panel.
"""

from __future__ import annotations

import json
import logging
import os
import re
import unicodedata
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import discord
from pydantic import BaseModel, ConfigDict, Field, field_validator

log = logging.getLogger(__name__)

DEFAULT_BOT_NAME = "AetherTicket"
DEFAULT_AVATAR = "./avatar.png"
DEFAULT_EMBED_COLOR = "#5865F2"
DEFAULT_FOOTER_TEXT = "Powered by AetherPanel"
DEFAULT_TICKET_CATEGORY = "Support Tickets"
DEFAULT_SUPPORT_ROLE = "Support"

MAX_BOT_NAME_LENGTH = 32
MAX_FOOTER_LENGTH = 128
MAX_NAME_LENGTH = 64

CONFIG_FILE_MODE = 0o600

_CONTROL_CHARACTERS = re.compile(r"[\x00-\x1f\x7f]")
_MULTIPLE_SPACES = re.compile(r"\s{2,}")
_DISALLOWED_SYMBOLS = re.compile(r"[^A-Za-z0-9 _-]")
_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")


def sanitize_text(value: object, max_length: int, *, allow_symbols: bool = True) -> str:
    """Clean free-form text coming from the config file or the panel.

    Control characters become spaces, runs of whitespace collapse to a single
    space and the result is truncated to ``max_length``. With
    ``allow_symbols=False`` only ``[A-Za-z0-9 _-]`` survive, which keeps
    category and role names matchable against Discord's own names.
    """
    if not isinstance(value, str):
        return ""

    sanitized = _CONTROL_CHARACTERS.sub(" ", value).strip()
    sanitized = unicodedata.normalize("NFKC", sanitized)

    if not allow_symbols:
        sanitized = _DISALLOWED_SYMBOLS.sub("", sanitized)

    sanitized = _MULTIPLE_SPACES.sub(" ", sanitized)
    return sanitized[:max_length]


def sanitize_hex_color(value: object) -> str:
    """Normalize a 6-digit hex color to ``#RRGGBB``, falling back to the default."""
    if not isinstance(value, str):
        return DEFAULT_EMBED_COLOR

    match = _HEX_COLOR.match(value.strip())
    if not match:
        return DEFAULT_EMBED_COLOR

    return f"#{match.group(1).upper()}"


def redact_secret(value: str | None) -> str:
    """Return a loggable form of a secret that keeps only its first and last 4 characters."""
    if not value:
        return "<empty>"

    return f"{value[:4]}…{value[-4:]}"


class BrandingConfig(BaseModel):
    """Pydantic model for the bot's branding settings.

    Field aliases keep the camelCase keys used by ``config.json``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    bot_name: str = Field(default=DEFAULT_BOT_NAME, alias="botName")
    avatar: str = Field(default=DEFAULT_AVATAR)
    embed_color: str = Field(default=DEFAULT_EMBED_COLOR, alias="embedColor")
    footer_text: str = Field(default=DEFAULT_FOOTER_TEXT, alias="footerText")
    ticket_category: str = Field(default=DEFAULT_TICKET_CATEGORY, alias="ticketCategory")
    support_role: str = Field(default=DEFAULT_SUPPORT_ROLE, alias="supportRole")

    @field_validator("bot_name", mode="before")
    @classmethod
    def _clean_bot_name(cls, value: object) -> str:
        return sanitize_text(value, MAX_BOT_NAME_LENGTH)

    @field_validator("avatar", mode="before")
    @classmethod
    def _clean_avatar(cls, value: object) -> str:
        if isinstance(value, str) and value:
            return value
        return DEFAULT_AVATAR

    @field_validator("embed_color", mode="before")
    @classmethod
    def _clean_embed_color(cls, value: object) -> str:
        return sanitize_hex_color(value)

    @field_validator("footer_text", mode="before")
    @classmethod
    def _clean_footer_text(cls, value: object) -> str:
        return sanitize_text(value, MAX_FOOTER_LENGTH)

    @field_validator("ticket_category", "support_role", mode="before")
    @classmethod
    def _clean_discord_name(cls, value: object) -> str:
        return sanitize_text(value, MAX_NAME_LENGTH, allow_symbols=False)

    @property
    def color(self) -> discord.Color:
        """The embed color as a ``discord.Color``."""
        return discord.Color.from_str(self.embed_color)

    def to_file_dict(self) -> dict[str, str]:
        """Serialize using the camelCase keys of ``config.json``."""
        return self.model_dump(by_alias=True)


def merge_with_defaults(data: Mapping[str, Any] | None) -> BrandingConfig:
    """Overlay ``data`` on the defaults and normalize the result."""
    if data is None:
        return BrandingConfig()

    merged: dict[str, Any] = BrandingConfig().to_file_dict()
    for key, value in data.items():
        if value is not None:
            merged[_file_key(key)] = value
    return BrandingConfig.model_validate(merged)


def load_branding(path: Path) -> BrandingConfig:
    """Load the branding file, creating it with defaults when missing.

    Never raises: an unreadable or malformed file is logged and the defaults
    are used instead.
    """
    if not path.exists():
        log.warning("%s not found, using default branding", path)
        defaults = merge_with_defaults(None)
        try:
            _write_config_file(path, defaults)
        except OSError:
            log.exception("Failed to write default branding to %s", path)
        return defaults

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        log.exception("Failed to load %s", path)
        return merge_with_defaults(None)

    if not isinstance(raw, dict):
        log.error("%s does not contain a JSON object, using default branding", path)
        return merge_with_defaults(None)

    return merge_with_defaults(raw)


def save_branding(config: BrandingConfig | Mapping[str, Any], path: Path) -> bool:
    """Normalize and atomically replace the branding file.

    Returns:
        True if the file was written, False if writing failed.
    """
    data = config.to_file_dict() if isinstance(config, BrandingConfig) else config
    sanitized = merge_with_defaults(data)

    try:
        _write_config_file(path, sanitized)
    except OSError:
        log.exception("Failed to save %s", path)
        return False

    log.info("Branding saved to %s", path)
    return True


def _file_key(key: str) -> str:
    field = BrandingConfig.model_fields.get(key)
    if field is not None and field.alias:
        return field.alias
    return key


def _write_config_file(path: Path, config: BrandingConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    content = json.dumps(config.to_file_dict(), indent=2) + "\n"

    try:
        fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CONFIG_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(temp_path, path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise

    try:
        path.chmod(CONFIG_FILE_MODE)
    except OSError as e:
        log.warning("Unable to set secure permissions on %s: %s", path, e)
