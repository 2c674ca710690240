import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash
from sqlalchemy import select
from sqlalchemy.orm import Session
from contextlib import contextmanager

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.showcase.db import build_engine, build_sessionmaker
from app.showcase.models import Base, User
from app.showcase.modules.projects.service import ensure_sdgs


@contextmanager
def _session_scope(database_url: str):
    engine = build_engine(database_url)
    s: Session = build_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def seed_only(*, database_url: str | None = None, create_tables: bool = False) -> None:
    """
    Seed the 17 SDGs and the admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///showcase.db").strip()

    if create_tables:
        engine = build_engine(db_url)
        Base.metadata.create_all(bind=engine)
        engine.dispose()

    with _session_scope(db_url) as s:
        inserted = ensure_sdgs(s)

        user = s.execute(select(User).where(User.email == admin_email)).scalar_one_or_none()
        if not user:
            user = User(
                username=admin_username,
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                role="admin",
                first_name="Admin",
                last_name="User",
            )
            s.add(user)

    print(f"Initialized database (seed_only); SDGs inserted: {inserted}.")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None, create_tables="--create-tables" in sys.argv[1:])


if __name__ == "__main__":
    main()
