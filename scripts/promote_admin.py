#!/usr/bin/env python3
"""Grant the admin role to an existing user (idempotent).

Usage:
  python scripts/promote_admin.py --email someone@example.com
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.taskboard.modules.users.service import promote_to_admin
from scripts._db_utils import resolve_database_url, script_session


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="Email of the user to promote")
    parser.add_argument("--database-url", default=None, help="Defaults to $DATABASE_URL")
    args = parser.parse_args()

    try:
        with script_session(resolve_database_url(args.database_url)) as s:
            user = promote_to_admin(s, args.email)
            print(f"Admin role attached to {user.email}")
    except LookupError as e:
        print(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
