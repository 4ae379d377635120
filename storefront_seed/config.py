"""Runtime configuration: reads .env and exposes connection and generator settings."""

import os
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from storefront_seed.plan import BoundsError, SizeBounds

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Env var prefix -> SizeBounds field
_BOUND_VARS: dict[str, str] = {
    "GEN_CATEGORIES": "categories",
    "GEN_CUSTOMERS": "customers",
    "GEN_PRODUCTS": "products",
    "GEN_ORDERS": "orders",
    "GEN_DEAD_PRODUCTS": "dead_products",
}


def _load_env() -> None:
    """Load environment variables from .env file in project root."""
    load_dotenv(PROJECT_ROOT / ".env")


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise BoundsError(f"{name} must be an integer, got {raw!r}") from None


def get_connection_params() -> dict[str, str | int]:
    """Return database connection parameters from environment."""
    _load_env()
    return {
        "host": os.getenv("DB_HOST", "localhost"),
        "port": int(os.getenv("DB_PORT", "5432")),
        "dbname": os.getenv("DB_NAME", "storefront_db"),
        "user": os.getenv("DB_USER", "storefront_admin"),
        "password": os.getenv("DB_PASSWORD", ""),
    }


def get_schema_name() -> str:
    """Target schema for the generated tables."""
    _load_env()
    return os.getenv("DB_SCHEMA", "storefront")


def get_connection() -> psycopg2.extensions.connection:
    """Create and return a new PostgreSQL connection (autocommit off)."""
    params = get_connection_params()
    return psycopg2.connect(**params)


def get_size_bounds() -> SizeBounds:
    """Build SizeBounds from GEN_* variables, falling back to the defaults.

    Raises BoundsError for non-integer values or an invalid combination.
    """
    _load_env()
    defaults = SizeBounds()
    overrides: dict[str, tuple[int, int]] = {}
    for prefix, field in _BOUND_VARS.items():
        lo, hi = getattr(defaults, field)
        overrides[field] = (
            _env_int(f"{prefix}_MIN", lo),
            _env_int(f"{prefix}_MAX", hi),
        )
    bounds = SizeBounds(**overrides)
    bounds.validate()
    return bounds


def get_seed() -> int | None:
    """Optional fixed seed; None means fresh randomness on every run."""
    _load_env()
    return _env_int("GEN_SEED", None)


def get_output_dir() -> Path:
    """Directory the CSV export is written to."""
    _load_env()
    raw = os.getenv("GEN_OUTPUT_DIR")
    return Path(raw) if raw else PROJECT_ROOT / "data"


def describe_settings() -> list[str]:
    """Effective settings, one line each; the password is never shown."""
    params = get_connection_params()
    target = f"{params['user']}@{params['host']}:{params['port']}/{params['dbname']}"
    lines = [f"database  {target} (schema {get_schema_name()})"]
    bounds = get_size_bounds()
    for prefix, field in _BOUND_VARS.items():
        lo, hi = getattr(bounds, field)
        lines.append(f"{field:<14} {lo:,}-{hi:,}  ({prefix}_MIN/_MAX)")
    seed = get_seed()
    lines.append(f"seed      {seed if seed is not None else 'unset (new dataset every run)'}")
    lines.append(f"csv dir   {get_output_dir()}")
    return lines


if __name__ == "__main__":
    try:
        for line in describe_settings():
            print(line)
    except BoundsError as e:
        print(f"Invalid generator configuration: {e}")
        raise SystemExit(1)

    try:
        get_connection().close()
        print("\nPostgreSQL reachable.")
    except psycopg2.OperationalError as e:
        print(f"\nPostgreSQL not reachable: {e}")
