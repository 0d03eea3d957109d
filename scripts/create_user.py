"""Create an account from the command line.

Usage:
  python scripts/create_user.py --username alice --password '...' [--name 'Alice']

NOTE: This is intended for local/dev.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from user_api.auth.security import PasswordHasher
from user_api.config import load_config
from user_api.db import init_db
from user_api.errors import UserApiError
from user_api.users.store import UserStore


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--username", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--name", default=None)
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    users = UserStore(cfg.DB_DSN, PasswordHasher(cfg.AUTH_PASSWORD_ROUNDS))
    try:
        u = users.create(name=args.name, username=args.username, password=args.password)
    except UserApiError as e:
        print(f"Could not create user: {e.detail}")
        sys.exit(1)

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
