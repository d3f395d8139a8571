"""Storefront database management CLI.

Creates or drops the relational schema of the commerce domain, using the
providers configured for the active PROTEAN_ENV.

Usage:
    PROTEAN_ENV=production python src/manage.py setup-db   # Create all tables
    PROTEAN_ENV=production python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys


def setup_database():
    """Create the database schema for the commerce domain."""
    from commerce.domain import commerce
    from commerce.utils.db import setup_db

    print("Initializing commerce domain...")
    commerce.init()
    providers = setup_db(commerce)
    if providers:
        print(f"  schema ready on: {', '.join(providers)}")
    else:
        print("  no relational providers configured; nothing to do.")
    print("Done.")


def drop_database():
    """Drop the database schema for the commerce domain."""
    from commerce.domain import commerce
    from commerce.utils.db import drop_db

    print("Initializing commerce domain...")
    commerce.init()
    providers = drop_db(commerce)
    if providers:
        print(f"  schema dropped on: {', '.join(providers)}")
    else:
        print("  no relational providers configured; nothing to do.")
    print("Done.")


def main():
    parser = argparse.ArgumentParser(description="Storefront database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
