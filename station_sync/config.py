"""Environment-driven configuration for the sync tools."""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import pymysql.cursors
from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

TRUTHY = ("1", "true", "yes", "on")

# Station-2100 tables copied by the table migration path, in dependency order.
DEFAULT_TABLES = [
    "profiles",
    "user_roles",
    "custom_roles",
    "inventory_products",
    "inventory_batches",
    "customers",
    "job_cards",
    "job_card_items",
    "rotable_parts",
    "rotable_installations",
    "rotable_repairs",
    "tools",
    "tool_checkouts",
    "exchange_rates",
    "audit_logs",
    "company_details",
    "compliance_documents",
    "stock_movements",
    "inventory_pooling",
    "flight_tracking",
    "installation_logs",
    "repair_exchange",
    "rotable_alerts",
    "rotable_reports",
    "rotable_roles",
]

# Tables whose counts are reported after a dump file load.
VERIFY_TABLES = [
    "users",
    "profiles",
    "inventory_products",
    "inventory_batches",
    "customers",
    "job_cards",
    "user_roles",
    "exchange_rates",
]


def load_env_files(*paths: str) -> None:
    """Load dotenv files; variables already in the environment win."""
    for path in paths or (".env.local", ".env"):
        if os.path.exists(path):
            load_dotenv(path, override=False)
            logger.debug(f"Loaded environment from {path}")


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in TRUTHY


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


@dataclass
class MySQLConfig:
    """Connection settings for the MySQL target."""
    host: str = "127.0.0.1"
    port: int = 3306
    user: str = "root"
    password: str = ""
    database: str = "station2100_mysql_shadow"
    charset: str = "utf8mb4"
    connect_timeout: int = 10
    read_timeout: Optional[int] = None
    write_timeout: Optional[int] = None

    def to_connection_params(self, with_database: bool = True) -> Dict[str, Any]:
        """Convert to PyMySQL connection parameters."""
        params = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "charset": self.charset,
            "connect_timeout": self.connect_timeout,
            "autocommit": False,
            "cursorclass": pymysql.cursors.DictCursor,
        }
        if with_database:
            params["database"] = self.database
        if self.read_timeout:
            params["read_timeout"] = self.read_timeout
        if self.write_timeout:
            params["write_timeout"] = self.write_timeout
        return params

    def describe(self) -> str:
        """Connection summary safe for logs."""
        return f"{self.user}@{self.host}:{self.port}/{self.database}"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "MySQLConfig":
        env = os.environ if env is None else env
        return cls(
            host=env.get("MYSQL_HOST") or "127.0.0.1",
            port=_int(env, "MYSQL_PORT", 3306),
            user=env.get("MYSQL_USER") or "root",
            password=env.get("MYSQL_PASSWORD", ""),
            database=env.get("MYSQL_DB") or "station2100_mysql_shadow",
        )


@dataclass
class SupabaseConfig:
    """Connection settings for the Supabase source."""
    url: Optional[str] = None
    service_role_key: Optional[str] = None
    page_size: int = 1000
    timeout: int = 30
    max_retries: int = 3
    backoff_factor: float = 1.0

    @property
    def rest_url(self) -> str:
        if not self.url:
            raise ConfigError("SUPABASE_URL (or VITE_SUPABASE_URL) is not set")
        return f"{self.url.rstrip('/')}/rest/v1"

    def require_credentials(self) -> None:
        """Raise ConfigError unless both URL and service key are present."""
        missing = []
        if not self.url:
            missing.append("SUPABASE_URL")
        if not self.service_role_key:
            missing.append("SUPABASE_SERVICE_ROLE_KEY")
        if missing:
            raise ConfigError(f"Missing Supabase configuration: {', '.join(missing)}")

    def mask(self, text: str) -> str:
        """Hide the service key in a message before it is logged."""
        if self.service_role_key and self.service_role_key in text:
            return text.replace(self.service_role_key, "***")
        return text

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SupabaseConfig":
        env = os.environ if env is None else env
        return cls(
            url=env.get("SUPABASE_URL") or env.get("VITE_SUPABASE_URL"),
            service_role_key=(
                env.get("SUPABASE_SERVICE_ROLE_KEY")
                or env.get("VITE_SUPABASE_SERVICE_ROLE_KEY")
            ),
            page_size=_int(env, "SYNC_BATCH_SIZE", 1000),
        )


@dataclass
class SyncSettings:
    """All settings consumed by the CLI, the API and the orchestrator."""
    mysql: MySQLConfig = field(default_factory=MySQLConfig)
    supabase: SupabaseConfig = field(default_factory=SupabaseConfig)
    allow_sync: bool = False
    tables: List[str] = field(default_factory=lambda: list(DEFAULT_TABLES))
    port: int = 8787
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SyncSettings":
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read instead of os.environ

        Returns:
            SyncSettings instance
        """
        env = os.environ if env is None else env

        tables = list(DEFAULT_TABLES)
        raw_tables = env.get("SYNC_TABLES")
        if raw_tables:
            try:
                tables = json.loads(raw_tables)
            except json.JSONDecodeError as e:
                raise ConfigError(f"SYNC_TABLES must be a JSON array: {e}")
            if not isinstance(tables, list) or not all(isinstance(t, str) for t in tables):
                raise ConfigError("SYNC_TABLES must be a JSON array of table names")

        return cls(
            mysql=MySQLConfig.from_env(env),
            supabase=SupabaseConfig.from_env(env),
            allow_sync=_flag(env.get("ALLOW_SYNC")),
            tables=tables,
            port=_int(env, "SYNC_PORT", 8787),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )
