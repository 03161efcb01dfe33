# snartnet/config.py
"""
Configuration settings for the identity core and its CLI.
"""

import logging
import os
from pathlib import Path
from typing import Optional


class Config:
    """Central configuration, read from the environment at construction time."""

    def __init__(self) -> None:
        # Storage
        self.DB_PATH: Path = Path(
            os.getenv("SNARTNET_DB_PATH", str(Path.home() / ".snartnet" / "identity.db"))
        ).expanduser()
        self.KEYPAIR_STORAGE_KEY: str = "snartnet_keypair"
        self.PROFILE_STORAGE_KEY: str = "snartnet_current_profile"

        # Versioned JSON entry points (additive only)
        self.PROFILE_JSON_API: str = "profile-json-v1"
        self.POST_JSON_API: str = "post-json-v1"
        self.MESSAGE_JSON_API: str = "message-json-v1"

        # Backups
        self.BACKUP_VERSION: str = "1.0.0"

        # Logging
        level_name = os.getenv("SNARTNET_LOG_LEVEL", "WARNING").upper()
        self.LOG_LEVEL: int = getattr(logging, level_name, logging.WARNING)


def get_db_path(db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag
    2. SNARTNET_DB_PATH environment variable
    3. Default: ~/.snartnet/identity.db
    """
    path = db_flag.expanduser().resolve() if db_flag else Config().DB_PATH.resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    return path
