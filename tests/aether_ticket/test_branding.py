import json
import stat

import discord
import pytest

from aether_ticket.branding import (
    DEFAULT_EMBED_COLOR,
    BrandingConfig,
    load_branding,
    merge_with_defaults,
    redact_secret,
    sanitize_hex_color,
    sanitize_text,
    save_branding,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("5865f2", "#5865F2"),
        ("#5865f2", "#5865F2"),
        ("  #ABCDEF  ", "#ABCDEF"),
        ("not-a-color", DEFAULT_EMBED_COLOR),
        ("#12345", DEFAULT_EMBED_COLOR),
        (None, DEFAULT_EMBED_COLOR),
        (0x5865F2, DEFAULT_EMBED_COLOR),
    ],
)
def test_sanitize_hex_color(value, expected):
    assert sanitize_hex_color(value) == expected


def test_sanitize_text_replaces_control_characters_and_collapses_whitespace():
    assert sanitize_text("Aether\x00\x07Ticket\n\n  Bot", 32) == "Aether Ticket Bot"


def test_sanitize_text_truncates():
    assert sanitize_text("x" * 40, 32) == "x" * 32


def test_sanitize_text_strips_symbols_when_not_allowed():
    assert sanitize_text("Support <Tickets>! #1_a-b", 64, allow_symbols=False) == "Support Tickets 1_a-b"


def test_sanitize_text_non_string_is_empty():
    assert sanitize_text(123, 32) == ""


def test_branding_model_applies_limits():
    branding = BrandingConfig.model_validate(
        {
            "botName": "N" * 50,
            "footerText": "F" * 200,
            "ticketCategory": "Help & Support!!",
            "supportRole": "Staff\tTeam",
            "embedColor": "ff0000",
            "avatar": "",
        }
    )

    assert branding.bot_name == "N" * 32
    assert branding.footer_text == "F" * 128
    assert branding.ticket_category == "Help Support"
    assert branding.support_role == "Staff Team"
    assert branding.embed_color == "#FF0000"
    assert branding.avatar == "./avatar.png"
    assert branding.color == discord.Color(0xFF0000)


def test_merge_with_defaults_none_returns_defaults():
    assert merge_with_defaults(None) == BrandingConfig()


def test_merge_with_defaults_overlays_partial_input():
    branding = merge_with_defaults({"footerText": "Custom footer", "support_role": "Helpers"})

    assert branding.footer_text == "Custom footer"
    assert branding.support_role == "Helpers"
    assert branding.bot_name == "AetherTicket"
    assert branding.ticket_category == "Support Tickets"


def test_load_branding_creates_missing_file(tmp_path):
    path = tmp_path / "config.json"

    branding = load_branding(path)

    assert branding == BrandingConfig()
    assert json.loads(path.read_text(encoding="utf-8"))["embedColor"] == "#5865F2"
    assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_load_branding_invalid_json_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    assert load_branding(path) == BrandingConfig()


def test_load_branding_non_object_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert load_branding(path) == BrandingConfig()


def test_load_branding_reads_file_fresh(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"botName": "First"}), encoding="utf-8")
    assert load_branding(path).bot_name == "First"

    path.write_text(json.dumps({"botName": "Second"}), encoding="utf-8")
    assert load_branding(path).bot_name == "Second"


def test_save_branding_normalizes_and_restricts_permissions(tmp_path):
    path = tmp_path / "config.json"

    assert save_branding({"embedColor": "abcdef", "botName": "Helper\x00Bot"}, path) is True

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert saved["embedColor"] == "#ABCDEF"
    assert saved["botName"] == "Helper Bot"
    assert set(saved) == {"botName", "avatar", "embedColor", "footerText", "ticketCategory", "supportRole"}
    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert list(tmp_path.iterdir()) == [path]


def test_save_branding_returns_false_on_failure(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")

    assert save_branding(BrandingConfig(), blocker / "config.json") is False


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, "<empty>"),
        ("", "<empty>"),
        ("abcdefghijkl", "abcd…ijkl"),
    ],
)
def test_redact_secret(value, expected):
    assert redact_secret(value) == expected
