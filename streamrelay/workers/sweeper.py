"""Run a reconciliation sweep outside the API process.

Usage:
    python -m streamrelay.workers.sweeper --mode startup
    python -m streamrelay.workers.sweeper --mode shutdown --owner <owner_id> --timeout 30

Exits with status 1 when the sweep did not reconcile every session.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from loguru import logger

from streamrelay.domain.live.session.session_domain import SessionService
from streamrelay.domain.live.session.session_models import SweepMode, SweepReport
from streamrelay.schemas.init_schemas import init_schema
from streamrelay.shared.api.utils import init_logger
from streamrelay.shared.storage.mongo import get_mongo_manager


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile recorded sessions with running processes")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in SweepMode],
        default=SweepMode.STARTUP.value,
        help="startup fails sessions whose process is gone; shutdown stops every active session",
    )
    parser.add_argument("--owner", default=None, help="Only sweep this owner's sessions")
    parser.add_argument("--timeout", type=float, default=None, help="Give up after this many seconds")
    return parser.parse_args(argv)


async def run(mode: SweepMode, owner_id: str | None, timeout: float | None) -> SweepReport:
    await init_schema()
    try:
        return await SessionService().reconcile(mode, owner_id=owner_id, timeout=timeout)
    finally:
        get_mongo_manager().close_all()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    init_logger()

    report = asyncio.run(run(SweepMode(args.mode), args.owner, args.timeout))
    logger.info(f"Sweep report: {report.model_dump_json()}")
    return 1 if report.timed_out or report.left_stopping or report.errors else 0


if __name__ == "__main__":
    sys.exit(main())
