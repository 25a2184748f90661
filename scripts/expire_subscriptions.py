"""Mark active subscriptions past their expiry as expired.

Expired rows are already ignored when deciding entitlements; this keeps the
``status`` column honest for reporting. Safe to run from cron at any rate.
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime, timezone

from sqlalchemy import update

from plantscan.config import Settings
from plantscan.db import SessionLocal, init_db
from plantscan.logger import setup_logging
from plantscan.models import Subscription

logger = logging.getLogger("expire_subscriptions")


def expire_subscriptions(now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    with SessionLocal() as session:
        result = session.execute(
            update(Subscription)
            .where(Subscription.status == "active", Subscription.expires_at <= now)
            .values(status="expired", updated_at=now)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        return result.rowcount


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.parse_args(argv)
    setup_logging()
    init_db(Settings())
    count = expire_subscriptions()
    logger.info("expired %s subscriptions", count)


if __name__ == "__main__":
    main()
