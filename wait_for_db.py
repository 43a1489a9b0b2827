import logging
import os
import time
from urllib.parse import urlparse

import psycopg2

logger = logging.getLogger("wait_for_db")


def wait_for_db(database_url: str | None = None, timeout_s: int | None = None) -> None:
    """Block until Postgres accepts connections. SQLite needs no waiting."""
    url = database_url or os.getenv("DATABASE_URL") or ""
    if not url:
        raise SystemExit("DATABASE_URL is not set")
    if url.startswith("sqlite"):
        return

    # SQLAlchemy URL may carry a driver suffix
    url = url.replace("postgresql+psycopg2://", "postgresql://").replace("postgres://", "postgresql://")
    p = urlparse(url)
    params = {
        "host": p.hostname or "db",
        "port": p.port or 5432,
        "user": p.username or "tourbook",
        "password": p.password or "tourbook",
        "dbname": (p.path or "/tourbook").lstrip("/") or "tourbook",
    }
    timeout_s = timeout_s if timeout_s is not None else int(os.getenv("DB_WAIT_TIMEOUT", "60"))
    start = time.time()

    logger.info("waiting for Postgres at %s:%s db=%s (timeout=%ss)", params["host"], params["port"], params["dbname"], timeout_s)
    while True:
        try:
            psycopg2.connect(**params).close()
            logger.info("Postgres is ready")
            return
        except psycopg2.OperationalError as e:
            if time.time() - start > timeout_s:
                logger.error("timed out waiting for DB: %s", e)
                raise
            time.sleep(1)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    wait_for_db()
