import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import unquote, urlsplit

from cityapi.errors import ConfigError

# Schemes accepted in DATABASE_URL. Anything else falls back to the DB_* variables.
DATABASE_URL_SCHEMES = ("postgres", "postgresql")

DEFAULT_DB_PORT = 5432


def _getenv(environ: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    value = environ.get(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _parse_port(raw: str, source: str) -> int:
    try:
        port = int(raw)
    except ValueError:
        raise ConfigError(f"{source} must be an integer port, got '{raw}'")
    if not 0 < port < 65536:
        raise ConfigError(f"{source} is out of range: {port}")
    return port


@dataclass(frozen=True)
class Settings:
    """Process configuration, read from the environment once at startup."""

    port: int = 8080
    host: str = "0.0.0.0"
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: str = "5432"
    db_name: str = "testdb"
    db_user: str = "postgres"
    db_pass: str = "postgres"
    static_dir: Optional[str] = "public"
    cors_allow_origins: Tuple[str, ...] = ("*",)
    log_level: str = "INFO"

    # PUBLIC_INTERFACE
    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Blank values are treated as unset. Only PORT is validated here; database
        variables are checked when a connection descriptor is resolved.
        """
        env = os.environ if environ is None else environ

        origins_env = _getenv(env, "CORS_ALLOW_ORIGINS")
        origins: Tuple[str, ...] = ("*",)
        if origins_env:
            origins = tuple(o.strip() for o in origins_env.split(",") if o.strip()) or ("*",)

        return cls(
            port=_parse_port(_getenv(env, "PORT", "8080"), "PORT"),
            host=_getenv(env, "HOST", "0.0.0.0"),
            database_url=_getenv(env, "DATABASE_URL"),
            db_host=_getenv(env, "DB_HOST", "localhost"),
            db_port=_getenv(env, "DB_PORT", "5432"),
            db_name=_getenv(env, "DB_NAME", "testdb"),
            db_user=_getenv(env, "DB_USER", "postgres"),
            db_pass=_getenv(env, "DB_PASS", "postgres"),
            static_dir=_getenv(env, "STATIC_DIR", "public"),
            cors_allow_origins=origins,
            log_level=_getenv(env, "LOG_LEVEL", "INFO").upper(),
        )


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Everything psycopg2 needs to open a session."""

    host: str
    port: int
    dbname: str
    user: str
    password: str
    sslmode: Optional[str] = None

    @property
    def requires_ssl(self) -> bool:
        return self.sslmode == "require"

    def connect_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "dbname": self.dbname,
            "user": self.user,
            "password": self.password,
        }
        if self.sslmode:
            kwargs["sslmode"] = self.sslmode
        return kwargs


def _uses_url_scheme(url: Optional[str]) -> bool:
    if not url:
        return False
    return any(url.startswith(f"{scheme}://") for scheme in DATABASE_URL_SCHEMES)


def _descriptor_from_url(url: str) -> ConnectionDescriptor:
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as exc:
        raise ConfigError(f"DATABASE_URL could not be parsed: {exc}")

    if "@" not in parts.netloc or not parts.username:
        raise ConfigError("DATABASE_URL is missing user credentials (expected user:pass@host)")
    if not parts.password:
        raise ConfigError("DATABASE_URL is missing a password (expected user:pass@host)")
    if not parts.hostname:
        raise ConfigError("DATABASE_URL is missing a host")

    dbname = parts.path.lstrip("/")
    if not dbname:
        raise ConfigError("DATABASE_URL is missing a database name")

    # Hosted PostgreSQL providers that hand out DATABASE_URL expect TLS.
    return ConnectionDescriptor(
        host=parts.hostname,
        port=port if port is not None else DEFAULT_DB_PORT,
        dbname=unquote(dbname),
        user=unquote(parts.username),
        password=unquote(parts.password),
        sslmode="require",
    )


# PUBLIC_INTERFACE
def resolve_descriptor(settings: Settings) -> ConnectionDescriptor:
    """
    Derive the database connection target from settings.

    DATABASE_URL wins when it uses a postgres scheme and forces sslmode=require.
    Otherwise the DB_* values are used as-is, without SSL. Raises ConfigError
    on malformed input.
    """
    if _uses_url_scheme(settings.database_url):
        return _descriptor_from_url(settings.database_url)

    return ConnectionDescriptor(
        host=settings.db_host,
        port=_parse_port(settings.db_port, "DB_PORT"),
        dbname=settings.db_name,
        user=settings.db_user,
        password=settings.db_pass,
    )
