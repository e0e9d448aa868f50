"""
Command line entry points.

    storefront-monitor [--alert-threshold=N] [--interval=S] [--env-file=PATH]
    storefront-backup {sync,complete,recover,restore NAME} [--env-file=PATH]
"""
import argparse
import logging
import signal
import sys
from typing import List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.config import Settings, settings as default_settings
from storefront.services.backup_service import COLLECTIONS, BackupError, JsonBackupService
from storefront.services.health_monitor import DatabaseMonitor, MonitorConfig
from storefront.utils.log import configure_logging

log = logging.getLogger("storefront.cli")


def _load_settings(env_file: Optional[str]) -> Settings:
    if env_file:
        return Settings(_env_file=env_file)
    return default_settings


def _session_factory(s: Settings):
    connect_args = {"check_same_thread": False} if s.DATABASE_URL.startswith("sqlite") else {}
    engine = create_engine(s.DATABASE_URL, future=True, connect_args=connect_args)
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


def build_monitor_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="storefront-monitor",
        description="Watch active product/category counts and alert on data loss.",
    )
    p.add_argument("--alert-threshold", type=int, default=None, help="minimum active products")
    p.add_argument("--interval", type=int, default=None, help="seconds between checks")
    p.add_argument("--env-file", default=None, help="read settings from this env file")
    return p


def monitor_main(argv: Optional[List[str]] = None) -> int:
    args = build_monitor_parser().parse_args(argv)
    s = _load_settings(args.env_file)
    configure_logging(s.LOG_LEVEL, log_file=s.MONITOR_LOG_FILE, max_bytes=s.MONITOR_LOG_MAX_BYTES)

    config = MonitorConfig.from_settings(
        s, min_products=args.alert_threshold, interval=args.interval
    )
    engine, factory = _session_factory(s)
    backup = JsonBackupService(
        backup_dir=s.JSON_BACKUP_DIR,
        emergency_dir=s.EMERGENCY_BACKUP_DIR,
        session_factory=factory,
    )
    monitor = DatabaseMonitor(config, session_factory=factory, backup=backup)

    try:
        monitor.check_connection()
    except Exception as e:
        log.error("Failed to start database monitor: %s", e)
        engine.dispose()
        return 1
    log.info("Connected to database for monitoring")

    def shutdown(signum, frame):
        log.info("Database monitor shutting down (signal %s)", signum)
        monitor.stop()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        monitor.run()
    finally:
        engine.dispose()
    return 0


def build_backup_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="storefront-backup", description="JSON backups of the store.")
    p.add_argument("--env-file", default=None)
    sub = p.add_subparsers(dest="mode", required=True)
    sub.add_parser("sync", help="mirror every collection to JSON")
    sub.add_parser("complete", help="write one timestamped file with every collection")
    sub.add_parser("recover", help="restore collections that are empty in the database")
    r = sub.add_parser("restore", help="replace a collection with its JSON mirror")
    r.add_argument("name", choices=sorted(COLLECTIONS))
    return p


def backup_main(argv: Optional[List[str]] = None) -> int:
    args = build_backup_parser().parse_args(argv)
    s = _load_settings(args.env_file)
    configure_logging(s.LOG_LEVEL)
    engine, factory = _session_factory(s)
    svc = JsonBackupService(
        backup_dir=s.JSON_BACKUP_DIR,
        emergency_dir=s.EMERGENCY_BACKUP_DIR,
        session_factory=factory,
    )
    try:
        if args.mode == "sync":
            return 0 if svc.sync_all() else 2
        if args.mode == "complete":
            print(svc.create_complete_backup())
            return 0
        if args.mode == "recover":
            print(f"collections recovered: {svc.auto_recover()}")
            return 0
        return 0 if svc.restore_collection(args.name) else 2
    except BackupError as e:
        log.error("%s", e)
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(monitor_main())
