#!/usr/bin/env python3
"""Fail (and refund) generation jobs stuck in pending/generating. Meant for cron."""
import argparse
import asyncio
import logging

from webforge.core.config import LOG_LEVEL, STALE_JOB_MINUTES
from webforge.core.database import SessionLocal, engine
from webforge.services.generation_service import fail_stale_jobs


async def main(minutes: int) -> int:
    async with SessionLocal() as db:
        failed = await fail_stale_jobs(db, older_than_minutes=minutes)
    await engine.dispose()
    for job_id in failed:
        print(f"failed {job_id}")
    print(f"{len(failed)} stale job(s) failed")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--minutes", type=int, default=STALE_JOB_MINUTES,
                        help=f"age threshold in minutes (default {STALE_JOB_MINUTES})")
    args = parser.parse_args()
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    raise SystemExit(asyncio.run(main(args.minutes)))
