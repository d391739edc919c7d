#!/usr/bin/env python3
"""
Issue a development access token for an admin or employee account.

Usage:
    python scripts/issue_token.py admin <account_id>
    python scripts/issue_token.py employee <account_id> --tenant <tenant_id> --employee <employee_id>

Environment Variables:
    JWT_SECRET_KEY: Signing key shared with the API
"""

import argparse
import sys
from datetime import timedelta

import dotenv

dotenv.load_dotenv()


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a development access token")
    parser.add_argument("role", choices=["admin", "employee"])
    parser.add_argument("account_id", help="Account ID (token subject)")
    parser.add_argument("--tenant", help="Tenant ID, defaults to the account ID for admins")
    parser.add_argument("--employee", help="Employee record ID (employees only)")
    parser.add_argument("--minutes", type=int, default=60, help="Token lifetime")
    args = parser.parse_args()

    if args.role == "employee" and not (args.tenant and args.employee):
        print("✗ Employee tokens need --tenant and --employee", file=sys.stderr)
        sys.exit(1)

    from app.core.security import create_access_token

    claims = {
        "sub": args.account_id,
        "role": args.role,
        "tenant_id": args.tenant or args.account_id,
    }
    if args.employee:
        claims["employee_id"] = args.employee

    print(create_access_token(claims, expires_delta=timedelta(minutes=args.minutes)))


if __name__ == "__main__":
    main()
