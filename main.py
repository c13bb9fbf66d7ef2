#!/usr/bin/env python3
"""
Session Refresh Worker - Main Entry Point
=========================================

Keeps portal sessions for every managed account alive: keep-alive when the
cookies are still good, full login through the login service otherwise.

Usage:
    python main.py                  # Run the worker until interrupted
    python main.py --once           # Run a single refresh cycle and exit
    python main.py --daily-check    # Run the forced daily check now and exit
    python main.py --help           # Show help
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from refresher.clients.keepalive import HttpKeepAliveClient
from refresher.clients.login import HttpLoginClient
from refresher.core import db
from refresher.core.cache import CacheLayer
from refresher.core.config import Config, WorkerSettings, get_worker_settings
from refresher.core.errors import RefresherError
from refresher.refresh.circuit import CircuitBreaker
from refresher.refresh.decision import RefreshDecisionEngine
from refresher.refresh.locks import LoginGate
from refresher.refresh.pacing import PacingController
from refresher.refresh.schedule import RefreshScheduleStore
from refresher.refresh.throttle import FailureRateTracker
from refresher.stores.accounts import MongoAccountDirectory
from refresher.stores.redis_stores import RedisLockStore, RedisScheduleIndex, RedisSessionStore
from refresher.utils.logger import get_logger, setup_logging
from refresher.worker import RefreshWorker, start_worker, stop_worker

log = get_logger(__name__)


def build_worker(settings: WorkerSettings, cache: CacheLayer, accounts_collection) -> RefreshWorker:
    """Wire the default Redis, MongoDB and HTTP adapters into a worker."""
    index = RedisScheduleIndex(cache)
    sessions = RedisSessionStore(cache, index)
    locks = RedisLockStore(cache)
    directory = MongoAccountDirectory(accounts_collection)

    engine = RefreshDecisionEngine(
        sessions=sessions,
        locks=locks,
        login_client=HttpLoginClient(
            settings.login_service_url,
            api_key=settings.login_service_key,
            timeout=settings.login_timeout,
        ),
        keep_alive_client=HttpKeepAliveClient(
            sessions,
            base_url=settings.portal_base_url,
            timeout=settings.keep_alive_timeout,
        ),
        gate=LoginGate(locks, settings.max_concurrent_logins, flag_ttl=settings.login_flag_ttl),
        keep_alive_timeout=settings.keep_alive_timeout,
        login_timeout=settings.login_timeout,
        slot_wait_timeout=settings.slot_wait_timeout,
        slot_retry_delay=settings.slot_retry_delay,
    )
    pacing = PacingController(
        engine,
        batch_size=settings.batch_size,
        accounts_per_minute=settings.accounts_per_minute,
        throttle=FailureRateTracker(settings.accounts_per_minute, min_rate=settings.min_accounts_per_minute),
        circuit=CircuitBreaker(locks, index),
    )
    worker = RefreshWorker(
        RefreshScheduleStore(index, directory, sessions),
        pacing,
        min_sleep=settings.min_sleep,
        max_sleep=settings.max_sleep,
        base_backoff=settings.base_backoff,
        max_backoff=settings.max_backoff,
    )
    if settings.daily_check_enabled:
        worker.schedule_daily_check(hour=settings.daily_check_hour, timezone=settings.daily_check_timezone)
    return worker


async def _close_clients(worker: RefreshWorker) -> None:
    engine = worker.pacing.engine
    for client in (engine.login_client, engine.keep_alive_client):
        close = getattr(client, "close", None)
        if close is not None:
            await close()


async def run(mode: str) -> int:
    try:
        settings = get_worker_settings()
        settings.validate()
    except RefresherError as exc:
        log.critical(f"Invalid worker configuration: {exc.as_dict()}")
        return 1

    cache = CacheLayer.from_url(settings.redis_url)
    try:
        await cache.ping()
    except RefresherError as exc:
        log.critical(f"Redis unreachable at startup: {exc.message}")
        return 1

    try:
        collection = db.get_accounts_col(
            settings.accounts_collection,
            database=settings.mongo_database,
            uri=settings.mongo_uri,
        )
    except RefresherError as exc:
        log.critical(f"Account directory unavailable: {exc.message}")
        await cache.close()
        return 1
    worker = build_worker(settings, cache, collection)

    try:
        if mode == "once":
            tally = await worker.run_cycle()
            log.info(f"Single cycle finished: {tally.as_dict() if tally else 'skipped'}")
        elif mode == "daily-check":
            tally = await worker.run_daily_check()
            log.info(f"Daily check finished: {tally.as_dict()}")
        else:
            await start_worker(worker)
            try:
                while True:
                    await asyncio.sleep(3600)
            except asyncio.CancelledError:
                pass
    finally:
        await stop_worker(worker)
        await _close_clients(worker)
        await cache.close()
        db.close_client()
        log.info("Session refresh worker shut down")
    return 0


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Adaptive session refresh worker")
    parser.add_argument("--config", help="Path to settings.yaml", default=None)
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--once", action="store_true", help="Run one refresh cycle and exit")
    group.add_argument("--daily-check", action="store_true", help="Run the forced daily check and exit")
    args = parser.parse_args(argv)

    load_dotenv()
    if args.config:
        Config.load(args.config)
    setup_logging(args.config)
    log.info("=== Session Refresh Worker Starting ===")

    mode = "once" if args.once else "daily-check" if args.daily_check else "worker"
    try:
        return asyncio.run(run(mode))
    except KeyboardInterrupt:
        log.info("Interrupted, shutting down")
        return 0


if __name__ == "__main__":
    sys.exit(main())
