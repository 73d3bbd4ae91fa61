import argparse
import json
from pathlib import Path

from .env import load_env

from . import __version__
from .audit import AuditLog
from .cache import ResultCache
from .config import DEFAULT_PEOPLE_PATH, StoreConfig
from .coordinator import LookupCoordinator
from .errors import DataLoadError, InvalidQueryError
from .index import LocalIndex
from .logger import get_logger
from .models import CallerIdentity
from .store import ExternalStoreClient


def build_coordinator(
    people_path: Path,
    config: StoreConfig,
    audit_path: Path = None,
    connect: bool = True,
) -> LookupCoordinator:
    """
    Wire the lookup components.

    Raises:
        DataLoadError: the people file cannot be loaded
    """
    index = LocalIndex.load(people_path)
    store = ExternalStoreClient(config)
    if connect:
        store.connect()
    return LookupCoordinator(
        index=index,
        store=store,
        cache=ResultCache(timeout=config.cache_timeout),
        audit=AuditLog(audit_path),
    )


def _print(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _coordinator(args: argparse.Namespace, connect: bool = True) -> LookupCoordinator:
    try:
        return build_coordinator(
            Path(args.data),
            StoreConfig.from_env(),
            audit_path=Path(args.audit_file) if args.audit_file else None,
            connect=connect,
        )
    except DataLoadError as e:
        raise SystemExit(f"Cannot start: {e}")


def _caller(args: argparse.Namespace) -> CallerIdentity:
    return CallerIdentity(id=args.caller, name=args.caller, role="cli")


def cmd_resolve(args: argparse.Namespace) -> None:
    coordinator = _coordinator(args)
    try:
        result = coordinator.resolve(args.number, _caller(args))
    except InvalidQueryError as e:
        print(f"Invalid: {e}")
        raise SystemExit(2)
    finally:
        coordinator.store.close()

    _print(result.to_dict())
    if result.is_empty:
        raise SystemExit(1)


def cmd_search(args: argparse.Namespace) -> None:
    coordinator = _coordinator(args, connect=False)
    try:
        records = coordinator.search_by_name(args.text, _caller(args))
    except InvalidQueryError as e:
        print(f"Invalid: {e}")
        raise SystemExit(2)

    _print({"total": len(records), "data": [r.to_dict() for r in records]})
    if not records:
        raise SystemExit(1)


def cmd_status(args: argparse.Namespace) -> None:
    coordinator = _coordinator(args)
    try:
        _print(coordinator.get_status())
    finally:
        coordinator.store.close()


def cmd_stats(args: argparse.Namespace) -> None:
    coordinator = _coordinator(args, connect=False)
    _print(coordinator.index.stats())


def cmd_audit(args: argparse.Namespace) -> None:
    if not args.audit_file:
        raise SystemExit("The audit command needs --audit-file")
    audit = AuditLog(Path(args.audit_file))
    try:
        entries = audit.query(
            caller_id=args.caller_id,
            date_from=args.date_from,
            date_to=args.date_to,
        )
    except ValueError as e:
        raise SystemExit(f"Invalid date: {e}")
    _print({"total": len(entries), "data": [e.to_dict() for e in entries]})


def main(argv=None):
    # Load .env if present (DB_HOST, DB_PASSWORD, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="pollsite", description="Person and polling-site lookup")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--data", default=str(DEFAULT_PEOPLE_PATH), help="People JSON file (default: data/people.json)")
    parser.add_argument("--audit-file", help="Persist the audit log to this JSON file")
    parser.add_argument("--caller", default="cli", help="Caller id recorded in the audit log")

    subparsers = parser.add_subparsers(dest="command")
    res = subparsers.add_parser("resolve", help="Resolve an identifying number")
    res.add_argument("number", help="Identifying number (digits only)")
    res.set_defaults(func=cmd_resolve)

    srch = subparsers.add_parser("search", help="Search local records by name fragment")
    srch.add_argument("text", help="At least two characters of the full name")
    srch.set_defaults(func=cmd_search)

    st = subparsers.add_parser("status", help="Show store state, cache size and query counters")
    st.set_defaults(func=cmd_status)

    sts = subparsers.add_parser("stats", help="Show local record counts by group, neighborhood and gender")
    sts.set_defaults(func=cmd_stats)

    aud = subparsers.add_parser("audit", help="List audit entries")
    aud.add_argument("--caller-id", help="Only entries by this caller")
    aud.add_argument("--from", dest="date_from", help="From date YYYY-MM-DD")
    aud.add_argument("--to", dest="date_to", help="To date YYYY-MM-DD (inclusive)")
    aud.set_defaults(func=cmd_audit)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        get_logger().log_metrics_summary()
        return

    parser.print_help()


if __name__ == "__main__":
    main()
