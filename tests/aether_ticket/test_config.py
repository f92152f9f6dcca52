from pathlib import Path

import pytest
from pydantic import ValidationError

from aether_ticket.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.database_path == Path("data") / "tickets.db"
    assert settings.branding_path == Path("config.json")
    assert settings.ticket_close_delay_seconds == 5.0
    assert settings.transcript_message_limit == 100


def test_token_accepts_discord_token_alias(monkeypatch):
    monkeypatch.delenv("TOKEN", raising=False)
    monkeypatch.setenv("DISCORD_TOKEN", "abc.def.ghi")

    settings = Settings(_env_file=None)

    assert settings.token == "abc.def.ghi"


def test_negative_close_delay_rejected():
    with pytest.raises(ValidationError, match="ticket_close_delay_seconds"):
        Settings(_env_file=None, ticket_close_delay_seconds=-1)


@pytest.mark.parametrize("limit", [0, 101])
def test_transcript_limit_out_of_range_rejected(limit):
    with pytest.raises(ValidationError, match="transcript_message_limit"):
        Settings(_env_file=None, transcript_message_limit=limit)
