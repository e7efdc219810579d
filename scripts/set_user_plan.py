"""
Script to put an existing user on a plan (support and local testing).
Run: python -m scripts.set_user_plan user@example.com pro
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db.session import SessionLocal
from app.db.models.user import User
from app.services.quota_service import reset_usage
from app.services.subscription_service import PLAN_TYPES, create_or_update_subscription
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def set_user_plan(email: str, plan_type: str, reset_today: bool = False) -> bool:
    """Set the plan of the user with this email; optionally zero today's usage."""
    if plan_type not in PLAN_TYPES:
        logger.error(f"Unknown plan {plan_type!r}, expected one of {', '.join(PLAN_TYPES)}")
        return False

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.lower()).first()
        if not user:
            logger.error(f"User {email} not found")
            return False

        create_or_update_subscription(db, user.id, plan_type=plan_type)
        if reset_today:
            reset_usage(db, user.id)

        logger.info(f"User {email} (ID: {user.id}) is now on the {plan_type} plan")
        return True
    finally:
        db.close()


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage: python -m scripts.set_user_plan <email> <free|pro> [--reset-usage]")
        sys.exit(1)

    ok = set_user_plan(sys.argv[1], sys.argv[2], reset_today="--reset-usage" in sys.argv[3:])
    sys.exit(0 if ok else 1)
