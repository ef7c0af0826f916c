"""
Idempotent seed: bootstrap admin invitation, plus the demo dataset when
SEED_SAMPLE_DATA=1. Expects the schema to exist (alembic upgrade head).

Usage:
  ADMIN_EMAIL=you@example.com python scripts/init_db.py
"""

import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

from app.crm.seed import seed_admin_invitation, seed_sample_data
from scripts._db_utils import database_url, script_session


def seed_only(*, database_url_override: str | None = None) -> None:
    admin_email = (os.environ.get("ADMIN_EMAIL") or "").strip().lower()
    with_samples = (os.environ.get("SEED_SAMPLE_DATA") or "").strip().lower() in ("1", "true", "yes")

    # Direct engine/session so release can run this without building the Flask app.
    with script_session(database_url(database_url_override)) as s:
        if admin_email:
            inv = seed_admin_invitation(s, admin_email)
            if inv is not None:
                print(f"Admin invitation ready for {admin_email} (id={inv.id})", flush=True)
        else:
            print("ADMIN_EMAIL not set; skipping admin invitation.", flush=True)

        if with_samples:
            added = seed_sample_data(s)
            print("Sample data loaded." if added else "Customers already present; sample data skipped.", flush=True)


def main() -> None:
    load_dotenv()
    seed_only()


if __name__ == "__main__":
    main()
