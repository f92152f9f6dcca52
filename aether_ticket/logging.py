import logging
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import discord


def setup_logging(level: int = logging.INFO, log_dir: Path = Path("logs")) -> Path:
    """Set up the logging configuration.

    This configures the root logger to output to both the console (via discord.utils)
    and a unique timestamped log file in the 'logs/' directory.

    Returns:
        The path of the log file created for this session.
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now(ZoneInfo("UTC")).strftime("%Y-%m-%d_%H-%M-%S")
    log_file = log_dir / f"aether_{timestamp}.log"

    # root=True ensures we capture logs from all libraries (discord, aiosqlite, asyncio)
    discord.utils.setup_logging(level=level, root=True)

    dt_fmt = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter("[{asctime}] [{levelname:<8}] {name}: {message}", dt_fmt, style="{")

    file_handler = logging.FileHandler(filename=log_file, encoding="utf-8", mode="w")
    file_handler.setFormatter(formatter)
    logging.getLogger().addHandler(file_handler)

    # aiosqlite logs every statement at DEBUG
    logging.getLogger("aiosqlite").setLevel(max(level, logging.INFO))

    return log_file
