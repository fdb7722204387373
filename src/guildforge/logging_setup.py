from __future__ import annotations

import logging


def setup_logging(level: str = "INFO") -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # discord.py is chatty at INFO about gateway and HTTP internals
    for noisy in ("discord.http", "discord.gateway", "discord.client"):
        logging.getLogger(noisy).setLevel(max(numeric, logging.WARNING))

    logging.getLogger("guildforge").setLevel(numeric)
