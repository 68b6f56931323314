#!/usr/bin/env python3
"""
Create the chat history DB (users + messages tables) and print what it holds.

Usage:
  python scripts/init_chat_db.py
  python scripts/init_chat_db.py --db data/chat.db --lat 37.5665 --lon 126.9780

The server creates the same schema on startup when persistence is enabled; this
script is for preparing the file ahead of time or peeking at recent history.
"""
import argparse
import sqlite3
import sys
from pathlib import Path

backend = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend))

from src.data.chat_store import MESSAGE_WINDOW_SECONDS, SqliteChatStore
from src.presence.proximity import PROXIMITY_RADIUS_M


def main() -> int:
    parser = argparse.ArgumentParser(description="Init chat history DB")
    parser.add_argument(
        "--db",
        default=backend / "data" / "chat.db",
        type=Path,
        help="Path to chat SQLite DB",
    )
    parser.add_argument("--lat", type=float, help="Show recent messages near this latitude")
    parser.add_argument("--lon", type=float, help="Show recent messages near this longitude")
    parser.add_argument("--radius", type=float, default=PROXIMITY_RADIUS_M, help="Radius in meters")
    args = parser.parse_args()

    store = SqliteChatStore(args.db)
    try:
        store.init()
    except sqlite3.Error as e:
        print(f"Error: cannot initialise {args.db}: {e}", file=sys.stderr)
        return 1

    with sqlite3.connect(args.db) as conn:
        users = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
        messages = conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]
    print(f"{args.db}: {users} users, {messages} messages")

    if args.lat is not None and args.lon is not None:
        recent = store.query_recent_messages_near(args.lat, args.lon, args.radius, MESSAGE_WINDOW_SECONDS)
        for m in recent:
            print(f"{m.timestamp.isoformat()} {m.sender_name or m.sender_connection_id}: {m.text}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
