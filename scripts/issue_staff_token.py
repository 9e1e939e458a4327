"""Print a staff bearer token for the booking workflow endpoints."""

from __future__ import annotations

import argparse
from datetime import timedelta

from coachcarter.core.config import get_settings
from coachcarter.core.security import create_staff_token


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Issue a signed staff token (status changes, booking lookup, outbox runs).",
    )
    parser.add_argument("name", help="Staff member name recorded as the actor in audit logs.")
    parser.add_argument(
        "--expires-minutes",
        type=int,
        default=None,
        help="Token lifetime; defaults to STAFF_TOKEN_EXPIRE_MINUTES.",
    )
    return parser


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    if not args.name.strip():
        parser.error("name must not be blank")

    settings = get_settings()
    minutes = args.expires_minutes or settings.staff_token_expire_minutes
    print(create_staff_token(args.name.strip(), expires_delta=timedelta(minutes=minutes)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
