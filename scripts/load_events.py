"""
Event Export Loader

Usage:
    python scripts/load_events.py <path-to-ndjson> [<path-to-ndjson> ...]

File Format:
    One event per line, Firebase export shape:
    {"event_timestamp": 1717200000000000, "event_name": "first_open",
     "user_pseudo_id": "u1", "platform": "IOS",
     "event_params": [{"key": "level", "value": {"int_value": 3}}],
     "geo": {"country": "Germany"}, "app_info": {"version": "1.4.0"}}
"""

import sys
from pathlib import Path

# Add parent directory to path to import game_analytics modules
sys.path.insert(0, str(Path(__file__).parent.parent))

import duckdb
from game_analytics.core.config import settings
from game_analytics.core.warehouse import connect_warehouse


def load_files(paths):
    """
    Load newline-delimited JSON exports into the configured warehouse

    Args:
        paths: Export files, loaded in order
    """
    missing = [p for p in map(Path, paths) if not p.exists()]
    if missing:
        print(f"Error: File not found: {missing[0]}")
        sys.exit(1)

    warehouse = connect_warehouse()

    total_loaded = 0
    try:
        for path in paths:
            print(f"Loading: {path}")
            try:
                loaded = warehouse.load_events(path)
            except duckdb.Error as e:
                print(f"Error loading {path}: {e}")
                sys.exit(1)
            total_loaded += loaded
            print(f"Loaded {loaded} events")

        print("\n" + "=" * 50)
        print("Load completed!")
        print(f"Total loaded: {total_loaded}")
        print(f"Events in {settings.events_table}: {warehouse.count_events()}")
        print("=" * 50)
    finally:
        warehouse.close()


def main():
    if len(sys.argv) < 2:
        print("Usage: python scripts/load_events.py <path-to-ndjson> [<path-to-ndjson> ...]")
        sys.exit(1)

    load_files(sys.argv[1:])


if __name__ == "__main__":
    main()
