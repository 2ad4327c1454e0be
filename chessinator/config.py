"""Runtime settings resolved from CHESSINATOR_* environment variables.

CLI flags override these in chessinator.cli.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import platformdirs

APP_NAME = "chessinator-cli"
DEFAULT_DATA_DIR = Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))
DB_FILENAME = "puzzle.db"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


@dataclass
class Settings:
    data_dir: Path
    db_path: Path
    reply_delay: float = 0.2
    exit_grace: float = 0.2
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the environment, with project defaults.

        Raises:
            ValueError: If a numeric variable is malformed.
        """
        data_dir = Path(os.environ.get("CHESSINATOR_DATA_DIR") or DEFAULT_DATA_DIR)
        db_path = Path(os.environ.get("CHESSINATOR_DB") or data_dir / DB_FILENAME)
        return cls(
            data_dir=data_dir,
            db_path=db_path,
            reply_delay=_env_float("CHESSINATOR_REPLY_DELAY", 0.2),
            exit_grace=_env_float("CHESSINATOR_EXIT_GRACE", 0.2),
            log_level=os.environ.get("CHESSINATOR_LOG_LEVEL", "WARNING").upper(),
        )
