"""
Release phase: migrate to head, then seed. scripts/start.py runs it before
gunicorn; it also works by hand:

  DATABASE_URL=postgresql+psycopg://... python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from alembic import command
from alembic.config import Config
from dotenv import load_dotenv

from scripts import init_db


def alembic_config(db_url: str) -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    # configparser interpolation: escape percent-encoded credentials.
    cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    return cfg


def run_release() -> None:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is required for the release phase.")
    if (os.environ.get("ENV") or "").strip().lower() in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release onto SQLite in production.")

    command.upgrade(alembic_config(db_url), "head")
    print("Migrations at head.", flush=True)
    init_db.seed_only(database_url_override=db_url)


if __name__ == "__main__":
    load_dotenv()
    run_release()
