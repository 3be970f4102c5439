"""
Environment configuration for the import service.

Loads credentials from backend/.env (if present) and the process environment.
Every connection setting is required; absence is a startup failure.
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

from .errors import ConfigError


# Load .env from backend directory
_backend_dir = Path(__file__).parent.parent
_env_path = _backend_dir / ".env"

DEFAULT_MYSQL_PORT = 3306

REQUIRED_VARS = (
    "WOO_DB_HOST",
    "WOO_DB_USER",
    "WOO_DB_PASSWORD",
    "WOO_DB_NAME",
    "WOO_TABLE_PREFIX",
    "SUPABASE_DB_URL",
)

# WordPress table prefixes are plain identifiers (e.g. "wp_", "wp2_")
_PREFIX_RE = re.compile(r"^[A-Za-z0-9_]+$")


@dataclass(frozen=True)
class ImportConfig:
    """Connection settings for both stores."""
    legacy_host: str
    legacy_user: str
    legacy_password: str
    legacy_database: str
    table_prefix: str
    target_db_url: str
    legacy_port: int = DEFAULT_MYSQL_PORT

    def legacy_connect_kwargs(self) -> Dict:
        """Keyword arguments for pymysql.connect()."""
        return {
            "host": self.legacy_host,
            "port": self.legacy_port,
            "user": self.legacy_user,
            "password": self.legacy_password,
            "database": self.legacy_database,
        }


def validate_table_prefix(prefix: str) -> str:
    """Return prefix unchanged if it is safe to splice into table names."""
    if not prefix or not _PREFIX_RE.match(prefix):
        raise ConfigError(f"Invalid WOO_TABLE_PREFIX: {prefix!r}")
    return prefix


def load_config(env: Optional[Dict[str, str]] = None, env_file: Optional[Path] = _env_path) -> ImportConfig:
    """
    Build ImportConfig from the environment.

    Args:
        env: Mapping to read from instead of os.environ (tests)
        env_file: .env file to load first; None to skip

    Raises:
        ConfigError: If any required variable is missing or malformed
    """
    if env is None:
        if env_file is not None:
            load_dotenv(env_file)
        env = os.environ

    missing = [name for name in REQUIRED_VARS if not env.get(name)]
    if missing:
        raise ConfigError(
            f"Missing required environment variables: {', '.join(missing)}. "
            "Set them in backend/.env or the environment.",
            missing=missing,
        )

    port_raw = env.get("WOO_DB_PORT") or str(DEFAULT_MYSQL_PORT)
    try:
        port = int(port_raw)
    except ValueError:
        raise ConfigError(f"WOO_DB_PORT must be an integer, got {port_raw!r}")

    return ImportConfig(
        legacy_host=env["WOO_DB_HOST"],
        legacy_user=env["WOO_DB_USER"],
        legacy_password=env["WOO_DB_PASSWORD"],
        legacy_database=env["WOO_DB_NAME"],
        table_prefix=validate_table_prefix(env["WOO_TABLE_PREFIX"]),
        target_db_url=env["SUPABASE_DB_URL"],
        legacy_port=port,
    )
