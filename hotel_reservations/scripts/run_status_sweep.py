from __future__ import annotations

import argparse
import logging
import time

from hotel_reservations.core.config import get_settings
from hotel_reservations.core.logging_config import configure_logging
from hotel_reservations.db.session import SessionLocal
from hotel_reservations.services.sweeper_service import run_sweep

logger = logging.getLogger(__name__)


def sweep_once() -> int:
    db = SessionLocal()
    try:
        report = run_sweep(db)
    finally:
        db.close()
    print(
        f"checked_out: {report.checked_out} checked_in: {report.checked_in} no_show: {report.no_show} "
        f"expired: {report.expired} failed: {report.failed} promotions_changed: {report.promotions_changed}"
    )
    return 1 if report.failed else 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Advance time-based booking statuses")
    parser.add_argument("--loop", action="store_true", help="keep sweeping until interrupted")
    parser.add_argument("--interval", type=int, default=None, help="seconds between sweeps (with --loop)")
    args = parser.parse_args(argv)

    configure_logging()
    if not args.loop:
        return sweep_once()

    interval = args.interval or get_settings().sweep_interval_seconds
    try:
        while True:
            try:
                sweep_once()
            except Exception:
                logger.exception("Sweep run failed")
            time.sleep(interval)
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
