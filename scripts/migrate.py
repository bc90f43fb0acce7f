import logging
import sys

from api.utils.db import DB_PATH
from migrations.runner import MigrationRunner
from storage.errors import MigrationError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def migrate(db_path=DB_PATH) -> list[str]:
    return MigrationRunner(db_path).run()


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else DB_PATH
    try:
        applied = migrate(target)
    except MigrationError as e:
        print(f"Migration failed: {e}")
        sys.exit(1)
    for name in applied:
        print(f"applied {name}")
    print(f"Database up to date (path: {target}).")
