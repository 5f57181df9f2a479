#!/usr/bin/env python3
"""
Import a station feed CSV from the command line.

Usage:
    python import_feed.py feed.csv [--editor USER_ID] [--init-db]
"""
import argparse
import json
import logging
import sys

from config.settings import settings
from database.connection import get_session, init_db
from services.exceptions import ValidationError
from services.feed_import_service import import_feed_csv


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import a station feed CSV")
    parser.add_argument("path", help="CSV file with the station feed")
    parser.add_argument("--editor", default=None, help="User id recorded on audit entries")
    parser.add_argument("--init-db", action="store_true", help="Create missing tables first")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.init_db:
        init_db()

    try:
        with get_session() as session:
            result = import_feed_csv(session, args.path, editor_id=args.editor)
    except (ValidationError, FileNotFoundError) as e:
        print(json.dumps({"success": False, "error": str(e)}))
        return 1

    print(json.dumps(result.to_response(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
