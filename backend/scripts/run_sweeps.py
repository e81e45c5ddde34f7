#!/usr/bin/env python3
"""
Run one scheduled-publish sweep and/or one sponsor lifecycle sweep against DATABASE_URL.
Same code path as POST /internal/publish/scheduled and /internal/sponsors/lifecycle, without the
HTTP secret gate (you already have database access).
Run: cd backend && python scripts/run_sweeps.py --publish --sponsors --limit 20
"""
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from liveblog.config import settings
from liveblog.db.session import SessionLocal
from liveblog.services.publish import FanoutChannels, clamp_publish_limit, run_scheduled_publish
from liveblog.services.sponsors import run_sponsor_lifecycle


def main():
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--publish", action="store_true", help="publish due scheduled updates")
    parser.add_argument("--sponsors", action="store_true", help="advance sponsor slot lifecycle")
    parser.add_argument("--limit", type=int, default=None, help="max updates to publish (default 50, max 100)")
    parser.add_argument("--no-fanout", action="store_true", help="publish without chat webhook / push")
    args = parser.parse_args()
    if not args.publish and not args.sponsors:
        parser.error("nothing to do: pass --publish and/or --sponsors")

    db = SessionLocal()
    try:
        if args.publish:
            fanout = FanoutChannels() if args.no_fanout else FanoutChannels.from_settings(settings)
            limit = clamp_publish_limit(args.limit)
            published = run_scheduled_publish(db, limit=limit, fanout=fanout)
            print(f"Published {published} update(s) (limit={limit})")
        if args.sponsors:
            result = run_sponsor_lifecycle(db)
            print(f"Sponsors: activated={result['activated']}, archived={result['archived']}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
