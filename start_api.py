#!/usr/bin/env python3
"""
Wait for the database, run migrations, seed, then exec uvicorn.
"""
import os
import sys

from alembic.config import Config
from alembic import command

from app.core.config import settings
from app.core.logging import configure_logging
from wait_for_db import wait_for_db

configure_logging()

# 1) Wait for DB
wait_for_db(settings.DATABASE_URL)

# 2) Run migrations using the same settings as the app
alembic_cfg = Config(os.path.join(os.path.dirname(os.path.abspath(__file__)), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")

# 3) Seed an admin and a sample tour
from app.seed import run as run_seed  # noqa: E402
run_seed()

# 4) Start uvicorn (replace current process)
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", os.getenv("PORT", "8000")],
)
