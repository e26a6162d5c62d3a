#!/usr/bin/env python3
"""
Run one balance escalation pass and exit.

For hosts that schedule jobs with cron instead of Celery beat:
    python scripts/run_escalation.py

Exit code 0 when the pass completed (even if single runners failed and were
logged), 1 when the pass itself could not run.
"""
import asyncio
import json
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from errands.core.config import settings  # noqa: E402
from errands.core.logging import get_logger, set_correlation_id, setup_logging  # noqa: E402
from errands.workers.tasks import run_escalations  # noqa: E402

logger = get_logger("scripts.run_escalation")


def main() -> int:
    setup_logging(
        level="DEBUG" if settings.DEBUG else "INFO",
        json_format=not settings.DEBUG,
        app_name=settings.APP_NAME,
    )
    set_correlation_id()

    try:
        report = asyncio.run(run_escalations())
    except Exception as e:
        logger.critical(
            "Balance escalation run failed",
            extra_data={"error": str(e)},
            exc_info=True,
        )
        return 1

    print(json.dumps(report, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
