"""
db/config.py

Database URL resolution for the model registry and queue tables.

Lookup order for the runtime URL:

    MODEL_JOBS_DATABASE_URL
    DATABASE_URL
    CLOUD_DATABASE_URL      (only when ENVIRONMENT is prod, production, staging or cloud)
    LOCAL_DATABASE_URL

Migrations look at an explicit override and ALEMBIC_DATABASE_URL first and
only accept PostgreSQL, since the schema uses JSONB and native UUID columns.
"""

from __future__ import annotations

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_FILE_NAMES = (".env", ".env.local")

CLOUD_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})
RUNTIME_URL_VARIABLES = ("MODEL_JOBS_DATABASE_URL", "DATABASE_URL")

_PSYCOPG_SCHEME = "postgresql+psycopg"
_SCHEME_ALIASES = {"postgres": _PSYCOPG_SCHEME, "postgresql": _PSYCOPG_SCHEME}
_SUPPORTED_BACKENDS = frozenset({"postgresql", "sqlite"})


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[len("export "):].lstrip()
    key, separator, value = line.partition("=")
    key = key.strip()
    if not separator or not key:
        return None
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        value = value[1:-1]
    return key, value


def load_env_files(root: Path | None = None) -> None:
    """
    Copy KEY=VALUE pairs from the project's env files into os.environ.

    Variables already present in the process environment win.
    """

    base_dir = root or PROJECT_ROOT
    for file_name in ENV_FILE_NAMES:
        env_path = base_dir / file_name
        if not env_path.is_file():
            continue
        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            parsed = _parse_env_line(raw_line)
            if parsed is not None:
                os.environ.setdefault(*parsed)


def _backend_of(url: str) -> str:
    scheme = url.partition("://")[0]
    return scheme.partition("+")[0]


def normalize_database_url(url: str) -> str:
    """
    Pin bare postgres URLs to the psycopg 3 driver; other URLs pass through.
    """

    url = url.strip()
    scheme, separator, rest = url.partition("://")
    if separator and scheme in _SCHEME_ALIASES:
        return f"{_SCHEME_ALIASES[scheme]}://{rest}"
    return url


def is_supported_database_url(url: str) -> bool:
    return _backend_of(url) in _SUPPORTED_BACKENDS


def is_postgres_url(url: str) -> bool:
    return _backend_of(url) == "postgresql"


def _first_env(*names: str) -> str | None:
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None


def resolve_database_url() -> str:
    load_env_files()

    url = _first_env(*RUNTIME_URL_VARIABLES)
    if url is None and os.getenv("ENVIRONMENT", "local").strip().lower() in CLOUD_ENVIRONMENTS:
        url = _first_env("CLOUD_DATABASE_URL")
    if url is None:
        url = _first_env("LOCAL_DATABASE_URL")
    if url is None:
        raise RuntimeError(
            "No database configured for the model registry. Set MODEL_JOBS_DATABASE_URL "
            "or DATABASE_URL, or LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
        )
    return normalize_database_url(url)


def resolve_migration_database_url(override: str | None = None, ini_url: str | None = None) -> str:
    """
    URL for Alembic: `override`, ALEMBIC_DATABASE_URL, `ini_url`, then the runtime URL.
    """

    load_env_files()

    url = (override or "").strip() or _first_env("ALEMBIC_DATABASE_URL") or (ini_url or "").strip()
    url = normalize_database_url(url) if url else resolve_database_url()
    if not is_postgres_url(url):
        raise RuntimeError(f"Migrations require a PostgreSQL URL, got backend {_backend_of(url)!r}.")
    return url
