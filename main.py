import argparse
import json
import sys
from dataclasses import dataclass
from typing import List, Optional

from db import SQLStorage, TableRepository, create_db_and_tables, engine
from exceptions import AuthenticationError, AuthorizationError
from logger import setup_logger
from services.acknowledgment import AcknowledgmentSlot, SuccessEvents
from services.auth import AuthService, require_admin
from services.records import RecordStore


@dataclass
class Services:
    tables: TableRepository
    records: RecordStore
    auth: AuthService


def build_services(bind=None) -> Services:
    """Create tables, seed the administrator and wire the record store."""
    bind = bind or engine
    create_db_and_tables(bind)
    tables = TableRepository(SQLStorage(bind))
    auth = AuthService(tables)
    auth.seed_admin()
    records = RecordStore(tables, AcknowledgmentSlot(), SuccessEvents())
    return Services(tables=tables, records=records, auth=auth)


def _print(data) -> None:
    print(json.dumps(data, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="donatehub", description="Donation records admin")
    parser.add_argument("--email", help="administrator email")
    parser.add_argument("--password", help="administrator password")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("inventory", help="approved inventory totals")

    p = sub.add_parser("list", help="list donation records")
    p.add_argument("--user", help="only this donor's records")

    p = sub.add_parser("approve", help="approve a donation and notify the donor")
    p.add_argument("donation_id")

    p = sub.add_parser("reject", help="reject a donation and notify the donor")
    p.add_argument("donation_id")
    p.add_argument("--reason", required=True)

    p = sub.add_parser("delete", help="delete a donation and its sub-rows")
    p.add_argument("donation_id")

    p = sub.add_parser("notifications", help="a donor's notifications")
    p.add_argument("user_id")
    return parser


def run(argv: Optional[List[str]] = None, services: Optional[Services] = None) -> int:
    args = build_parser().parse_args(argv)
    services = services or build_services()
    store = services.records

    session = None
    if args.email and args.password:
        try:
            session = services.auth.login(args.email, args.password)
        except AuthenticationError as e:
            print(f"Login failed: {e}", file=sys.stderr)
            return 1

    try:
        if args.command == "inventory":
            _print(store.approved_inventory().model_dump(by_alias=True))
        elif args.command == "list":
            if args.user:
                records = store.list_by_user(args.user)
            else:
                # Unfiltered listing is admin-only.
                require_admin(session)
                records = store.list_all()
            _print([d.model_dump(by_alias=True) for d in store.list_details(records)])
        elif args.command == "approve":
            record = store.approve(session, args.donation_id)
            if record is None:
                print("Donation not found", file=sys.stderr)
                return 1
            store.notify_decision(record)
            _print(record.model_dump(by_alias=True))
        elif args.command == "reject":
            if not args.reason.strip():
                print("A reason for rejection is required.", file=sys.stderr)
                return 1
            record = store.reject(session, args.donation_id, args.reason)
            if record is None:
                print("Donation not found", file=sys.stderr)
                return 1
            store.notify_decision(record)
            _print(record.model_dump(by_alias=True))
        elif args.command == "delete":
            store.delete_record(session, args.donation_id)
        elif args.command == "notifications":
            _print([n.model_dump(by_alias=True) for n in store.list_notifications(args.user_id)])
    except AuthorizationError as e:
        print(str(e), file=sys.stderr)
        return 2
    return 0


def cli() -> int:
    setup_logger()
    return run()


if __name__ == "__main__":
    sys.exit(cli())
