#!/usr/bin/env python3
"""
Start script for the event recommendation service.
Run: python start.py
"""

from __future__ import annotations

import sys

import uvicorn

try:
    from event_reco.config import settings
    from event_reco.logging_config import setup_logging, stop_logging
except ImportError as e:
    print(f"❌ Import error: {e}")
    print("   Make sure the package is installed: pip install -e .")
    sys.exit(1)


def mask_database_url(url: str) -> str:
    """Render DATABASE_URL with the password hidden."""
    from sqlalchemy.engine import make_url

    try:
        return make_url(url).render_as_string(hide_password=True)
    except Exception as e:  # malformed URL, show the error instead
        return f"(unparseable: {e})"


def check_database_connection() -> bool:
    try:
        from sqlalchemy import text
        from event_reco.db import get_engine

        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        error_msg = str(e)
        print(f"❌ Database connection failed: {error_msg}")
        if "password authentication failed" in error_msg.lower():
            print()
            print("💡 Troubleshooting:")
            print("   1. Check the password in .env")
            print("   2. URL-encode special characters in the password (@ -> %40, # -> %23)")
        elif "could not connect" in error_msg.lower() or "connection refused" in error_msg.lower():
            print()
            print("💡 Troubleshooting:")
            print("   1. Check host/port in DATABASE_URL")
            print("   2. Check that the database server is running")
        return False


def main() -> None:
    setup_logging(debug=settings.DEBUG)

    print("=" * 60)
    print("🚀 Starting event recommendation service")
    print("=" * 60)
    print(f"⚖️  Action weights: {settings.ACTION_WEIGHTS}")
    print(
        f"⚙️  Recent events: {settings.MAX_RECENT_EVENTS_FOR_PREDICTION}, "
        f"neighbours: {settings.MAX_NEIGHBOURS_FOR_PREDICTION}, max results: {settings.MAX_RESULTS}"
    )
    print(f"🧵 Partitions: {settings.NUM_PARTITIONS}, store shards: {settings.STORE_SHARDS}")
    print(f"🗄️  Similarity backend: {settings.SIMILARITY_BACKEND}")

    if settings.SIMILARITY_BACKEND == "sql":
        print(f"📊 Database: {mask_database_url(settings.DATABASE_URL)}")
        print("🔍 Checking database connection...")
        if not check_database_connection():
            print("⚠️  Cannot connect to database, exiting")
            sys.exit(1)
        print("✅ Database connection OK")
    print()

    print(f"📍 Server URL: http://0.0.0.0:8000")
    print(f"📖 API Docs: http://127.0.0.1:8000/docs")
    print(f"💚 Health: http://127.0.0.1:8000/health")
    print("=" * 60)

    try:
        uvicorn.run(
            "event_reco.api.main:app",
            host="0.0.0.0",
            port=8000,
            log_level="debug" if settings.DEBUG else "info",
            access_log=settings.DEBUG,
            # logging is already configured above
            log_config=None,
        )
    except KeyboardInterrupt:
        print("\n👋 Server stopped by user")
    finally:
        stop_logging()


if __name__ == "__main__":
    main()
