#!/usr/bin/env python3
"""Run one Mukando payout sweep from a cron host.

Usage:
    python tooling/scripts/run_mukando_payout_sweep.py --limit 50

Exits non-zero when any group failed to distribute.
"""

from __future__ import annotations

import sys

from smart_rewards_api.core.logging import configure_logging
from smart_rewards_api.core.settings import settings
from smart_rewards_api.tasks.mukando_payouts import main


if __name__ == "__main__":
    configure_logging(
        service_name="smart-rewards-payout-sweep",
        environment=settings.environment,
        version="cli",
        level=settings.log_level,
    )
    sys.exit(main(sys.argv[1:]))
