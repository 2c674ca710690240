"""
Release phase: migrate the schema to head, then seed reference data.

DATABASE_URL is mandatory here; the app's SQLite default is for local runs only.
Seeding is idempotent and never overwrites an existing admin password.

Usage:
  python scripts/release.py [--no-seed]
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

logger = logging.getLogger("showcase.release")


def _database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against a sqlite DATABASE_URL in production.")
    return db_url


def _alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def run_release(*, seed: bool = True) -> None:
    from alembic import command
    from alembic.script import ScriptDirectory

    db_url = _database_url()
    cfg = _alembic_config(db_url)
    head = ScriptDirectory.from_config(cfg).get_current_head()

    logger.info("Upgrading schema to %s", head)
    command.upgrade(cfg, "head")

    if seed:
        from scripts import init_db

        logger.info("Seeding SDGs and admin account")
        init_db.seed_only(database_url=db_url)
    logger.info("Release complete")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run_release(seed="--no-seed" not in sys.argv[1:])


if __name__ == "__main__":
    main()
