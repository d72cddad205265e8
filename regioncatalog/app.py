import argparse

from . import __version__
from .config import DEFAULT_DATABASE_URL, SyncConfig, database_url_from_env
from .database import create_db_engine, init_database
from .env import load_env
from .logger import StructuredLogger
from .orchestrator import build_orchestrator
from .store import UpsertStore


def cmd_sync(args: argparse.Namespace) -> None:
    try:
        config = SyncConfig.from_args(args)
    except ValueError as e:
        raise SystemExit(str(e))

    logger = StructuredLogger(level=config.log_level, log_dir=config.log_dir)
    try:
        orchestrator = build_orchestrator(config, logger)
        report = orchestrator.run()
    finally:
        logger.close()

    # Partial failures are in the log; the exit status stays 0
    print(
        f"Done. regions: new={report.regions_stored} existing={report.regions_existing} "
        f"institutions: new={report.institutions_stored} existing={report.institutions_existing} "
        f"failed_workers={report.failed_workers}"
    )
    if report.producer_error:
        print(f"[warn] region pagination stopped early: {report.producer_error}")


def cmd_init_db(args: argparse.Namespace) -> None:
    engine = create_db_engine(args.db_url)
    init_database(engine)
    print(f"Database ready: {engine.url.render_as_string(hide_password=True)}")


def cmd_list(args: argparse.Namespace) -> None:
    engine = create_db_engine(args.db_url)
    init_database(engine)
    store = UpsertStore(engine)
    rows = store.list_regions(limit=args.limit)
    if not rows:
        print("No regions in store.")
        return
    print(f"Found {store.count_regions()} regions, {store.count_institutions()} institutions:\n")
    for name, institutions in rows:
        print(f"  {name}: {institutions}")


def _db_url_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--db-url",
        default=None,
        help=f"SQLAlchemy database URL (or set REGIONCATALOG_DB_URL; default: {DEFAULT_DATABASE_URL})",
    )


def main(argv=None):
    # Load .env if present (VK_TOKEN, REGIONCATALOG_DB_URL, ...)
    load_env()
    parser = argparse.ArgumentParser(prog="regioncatalog", description="Sync VK regions and institutions into a database")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    syn = subparsers.add_parser("sync", help="Fetch all regions and their institutions and store them")
    syn.add_argument("--token", help="VK access token (or set VK_TOKEN)")
    syn.add_argument("--workers", type=int, help="Parallel region workers (default: CPU count)")
    syn.add_argument("--all-regions", action="store_true", help="Request the full region set (need_all), about 158000 regions")
    syn.add_argument("--deadline", type=float, help="Stop the whole run after this many seconds")
    syn.add_argument("--request-timeout", type=float, help="Per-request HTTP timeout in seconds (default 15)")
    syn.add_argument("--log-level", default="INFO", help="Console log level (default INFO)")
    syn.add_argument("--log-dir", help="Directory for log files (default: logs/)")
    _db_url_arg(syn)
    syn.set_defaults(func=cmd_sync)

    ini = subparsers.add_parser("init-db", help="Create the regions and institutions tables")
    _db_url_arg(ini)
    ini.set_defaults(func=cmd_init_db)

    lst = subparsers.add_parser("list", help="List stored regions with institution counts")
    _db_url_arg(lst)
    lst.add_argument("--limit", type=int, help="Show at most this many regions")
    lst.set_defaults(func=cmd_list)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        if args.db_url is None:
            args.db_url = database_url_from_env()
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
