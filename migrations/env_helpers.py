"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without triggering
alembic.context at import time.
"""

from __future__ import annotations

import os
from urllib.parse import quote_plus

from psycopg2.extensions import parse_dsn

_DRIVER_PREFIX = "postgresql+psycopg2://"


def libpq_dsn_to_url(dsn: str) -> str:
    """Convert a libpq key=value DSN to a SQLAlchemy URL.

    A host starting with "/" is a Unix socket directory and goes into the
    query string; otherwise host and port form the netloc.
    """
    params = parse_dsn(dsn)

    user = quote_plus(params.get("user", ""))
    password = quote_plus(params.get("password") or os.environ.get("DB_PASSWORD", ""))
    dbname = quote_plus(params.get("dbname", ""))
    host = params.get("host", "localhost")
    port = params.get("port", "5432")

    auth = f"{user}:{password}@" if password else (f"{user}@" if user else "")
    if host.startswith("/"):
        return f"{_DRIVER_PREFIX}{auth}/{dbname}?host={quote_plus(host)}"
    return f"{_DRIVER_PREFIX}{auth}{host}:{port}/{dbname}"


def get_database_url() -> str:
    """DATABASE_URL as a SQLAlchemy URL using the psycopg2 driver.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    if "://" not in url:
        return libpq_dsn_to_url(url)
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return _DRIVER_PREFIX + url[len(scheme):]
    return url
