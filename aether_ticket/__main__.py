import logging
import sys

import discord
from discord.ext import commands

from aether_ticket.bot import Bot
from aether_ticket.branding import redact_secret
from aether_ticket.config import settings
from aether_ticket.logging import setup_logging


def main() -> None:
    """Main function to run the application."""
    setup_logging(settings.log_level)
    log = logging.getLogger("aether_ticket")

    if not settings.token:
        log.error("TOKEN is not set in the environment or .env file")
        sys.exit(1)

    log.info("Starting AetherTicket with token %s", redact_secret(settings.token))

    intents = discord.Intents.default()
    # Transcripts need message content
    intents.message_content = True

    bot = Bot(command_prefix=commands.when_mentioned, intents=intents)
    bot.run(settings.token, log_handler=None)


if __name__ == "__main__":
    main()
