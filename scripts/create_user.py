import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from policyvault.database import Database, resolve_database_path
from policyvault.errors import PolicyVaultError


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a PolicyVault account")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument("--name", default=None, help="Display name for the account")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to POLICYVAULT_DB_PATH or data/policyvault.sqlite3)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < 8:
            print("Password must be at least 8 characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    db_env = args.db_path or os.getenv("POLICYVAULT_DB_PATH")
    db_path = resolve_database_path(db_env)

    database = Database(db_path)
    database.initialize()

    try:
        account = database.create_account(args.name, args.email, password)
    except PolicyVaultError as exc:  # duplicates, missing email
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created account {account.id}: {account.name} <{account.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
