# Set a user's role by email, bypassing the moderation policy.
# Used to bootstrap the first manager, since only a manager can change roles through the API.
#
#   python scripts/promote_user.py someone@campus.edu manager
import argparse
import os
import sys

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from campuscrate.db import SessionLocal  # noqa: E402
from campuscrate import models  # noqa: E402


def promote(email: str, role: str) -> int:
    db = SessionLocal()
    try:
        user = db.query(models.User).filter(models.User.email == email.strip().lower()).first()
        if user is None:
            print(f"No user with email {email}", file=sys.stderr)
            return 1
        old_role = user.role
        user.role = role
        db.add(user)
        db.commit()
        print(f"{user.email}: {old_role} -> {role}")
        return 0
    finally:
        db.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Set a user's role by email")
    parser.add_argument("email")
    parser.add_argument("role", choices=models.ROLES)
    args = parser.parse_args()
    return promote(args.email, args.role)


if __name__ == "__main__":
    sys.exit(main())
