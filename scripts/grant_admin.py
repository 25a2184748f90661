"""Grant or revoke unmetered admin scanning for a profile.

Usage:
  python scripts/grant_admin.py --user-id 5f1c...
  python scripts/grant_admin.py --user-id 5f1c... --revoke
"""

from __future__ import annotations

import argparse

from sqlalchemy import text

from plantscan.config import Settings
from plantscan.db import SessionLocal, init_db


def set_admin(user_id: str, is_admin: bool) -> bool:
    """Update the flag; returns ``False`` when the profile does not exist."""
    with SessionLocal() as session:
        result = session.execute(
            text("UPDATE profiles SET is_admin = :flag WHERE id = :uid"),
            {"uid": user_id, "flag": is_admin},
        )
        session.commit()
        return result.rowcount == 1


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--revoke", action="store_true")
    args = parser.parse_args(argv)

    init_db(Settings())

    if not set_admin(args.user_id, not args.revoke):
        raise SystemExit("Profile not found")
    print("revoked" if args.revoke else "granted")


if __name__ == "__main__":
    main()
