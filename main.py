#!/usr/bin/env python3
"""
DAX Gateway -- authenticated, signed and retried calls to the DAX
access-control partner API.

Usage:
  python main.py contracts
  python main.py contracts --context "Nightly sync"
  python main.py card-owner PARTNER-ID INSTANCE-ID CARD-OWNER-ID
  python main.py card-owners PARTNER-ID INSTANCE-ID --lastname Andersson --limit 20
  python main.py date
  python main.py --debug contracts

Environment variables (or .env):
  DAX_API_URL        Partner API base URL, e.g. https://dax.example.com
  DAX_CLIENT_ID      OAuth client id for the password grant
  DAX_USERNAME       OAuth username
  DAX_PASSWORD       OAuth password
  DAX_PEM_KEY_PATH   Path to the RSA private key used for request signing
  DAX_RETRY_*        Retry strategy, see core/config.py
"""

import argparse
import json
import logging
import sys
from typing import Any, Optional

from auth.signing import make_date_header
from core.client import DaxClient
from core.config import get_settings
from core.errors import DaxError


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dax-gateway",
        description="Signed, authenticated calls to the DAX access-control API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py contracts
  python main.py card-owner 1234 5678 42
  python main.py card-owners 1234 5678 --email anna@example.com
  python main.py --debug contracts    # logs the signing string and its hash
        """,
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level, including the signing string of every request",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    contracts = sub.add_parser("contracts", help="List contracts")
    contracts.add_argument(
        "--context",
        default="Testrequest",
        help="Request context sent in the body (default: Testrequest)",
    )

    owner = sub.add_parser("card-owner", help="Fetch a single card owner")
    owner.add_argument("partner_id", metavar="PARTNER-ID")
    owner.add_argument("instance_id", metavar="INSTANCE-ID")
    owner.add_argument("card_owner_id", metavar="CARD-OWNER-ID")

    owners = sub.add_parser("card-owners", help="Search card owners")
    owners.add_argument("partner_id", metavar="PARTNER-ID")
    owners.add_argument("instance_id", metavar="INSTANCE-ID")
    for field in ("firstname", "lastname", "email", "personnummer"):
        owners.add_argument(f"--{field}", default=None)
    owners.add_argument("--offset", type=int, default=None)
    owners.add_argument("--limit", type=int, default=None)

    sub.add_parser("date", help="Print a Date header value in the format DAX expects")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if args.debug else getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "date":
        print(make_date_header())
        return 0

    client = DaxClient(settings)
    try:
        if args.command == "contracts":
            _print_json(client.get_contracts(args.context))
        elif args.command == "card-owner":
            _print_json(client.get_card_owner(args.partner_id, args.instance_id, args.card_owner_id))
        elif args.command == "card-owners":
            result = client.query_card_owners(
                args.partner_id,
                args.instance_id,
                firstname=args.firstname,
                lastname=args.lastname,
                email=args.email,
                personnummer=args.personnummer,
                offset=args.offset,
                limit=args.limit,
            )
            _print_json(result.model_dump(by_alias=True, exclude_none=True))
    except DaxError as exc:
        print(f"  [!] {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
