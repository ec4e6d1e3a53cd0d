#!/usr/bin/env python3
"""Database bootstrap: run Alembic migrations (production-safe).

- Always run `alembic upgrade head` on startup.
- If migrations fail, fail fast (don't start with an unknown schema).
"""

import os
import sys
import time
from dotenv import load_dotenv

load_dotenv()

# Update when a migration is added on top of the current head
EXPECTED_HEADS = {"001"}


def _get_alembic_config(database_url=None):
    """Load Alembic config for programmatic migrations."""
    from alembic.config import Config

    here = os.path.dirname(os.path.abspath(__file__))
    cfg = Config(os.path.join(here, "alembic.ini"))
    if database_url:
        cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def alembic_upgrade_head(database_url=None) -> None:
    """Apply all pending migrations."""
    from alembic import command

    command.upgrade(_get_alembic_config(database_url), "head")


def check_migration_heads(expected_heads=EXPECTED_HEADS) -> int:
    """
    Assert the migration graph has exactly the expected heads and a single root.

    A new migration must chain off the existing head; a second root
    (down_revision = None) makes upgrade ordering non-deterministic.
    """
    from alembic.script import ScriptDirectory

    script = ScriptDirectory.from_config(_get_alembic_config())
    heads = set(script.get_heads())
    revisions = list(script.walk_revisions())
    roots = [r.revision for r in revisions if r.down_revision is None]

    if heads != set(expected_heads):
        print("MIGRATION HEAD CHECK FAILED")
        print(f"  Expected heads: {sorted(expected_heads)}")
        print(f"  Actual heads:   {sorted(heads)}")
        print("  Fix: set down_revision to the current head instead of None.")
        return 1

    if len(roots) != 1:
        print(f"MIGRATION ROOT CHECK FAILED: {sorted(roots)}")
        return 1

    print(f"Migration integrity check: OK ({len(heads)} heads, {len(revisions)} total)")
    return 0


def wait_for_database(max_retries: int = 30) -> bool:
    from core.database import check_db_connection

    for attempt in range(1, max_retries + 1):
        if check_db_connection():
            return True
        print(f"Database is unavailable - sleeping (attempt {attempt}/{max_retries})")
        time.sleep(1)
    return False


def main():
    if "--check-heads" in sys.argv:
        sys.exit(check_migration_heads())

    print("Waiting for database to be ready...")
    if not wait_for_database():
        print("ERROR: Database is not ready after maximum retries")
        sys.exit(1)
    print("Database is ready!")

    try:
        alembic_upgrade_head()
    except Exception as e:
        print(f"ERROR: Alembic upgrade failed: {e}")
        sys.exit(1)
    print("Migrations completed successfully!")


if __name__ == '__main__':
    main()
