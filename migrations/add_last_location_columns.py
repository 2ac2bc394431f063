"""
Migration: add the resume pointer to game_progress.

- game_progress: add last_module_id, last_question_index (INTEGER, nullable)
  and last_location_ts (DATETIME, nullable).
- game_progress: last_saved becomes nullable in practice; pointer-only rows
  (written before any snapshot) keep it NULL.
"""

import os
import sqlite3

COLUMNS = [
    ("last_module_id", "INTEGER"),
    ("last_question_index", "INTEGER"),
    ("last_location_ts", "DATETIME"),
]


def run_migration():
    db_path = os.getenv("PROGRESS_SYNC_DATABASE_URL", "sqlite:///./progress_sync.db").replace("sqlite:///", "")
    conn = None
    try:
        conn = sqlite3.connect(db_path)
        cursor = conn.cursor()

        cursor.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='game_progress'"
        )
        if not cursor.fetchone():
            print("game_progress table not found. Skipping column add.")
            return

        for name, column_type in COLUMNS:
            try:
                cursor.execute(f"ALTER TABLE game_progress ADD COLUMN {name} {column_type}")
                print(f"game_progress: added {name}")
            except sqlite3.OperationalError as e:
                if "duplicate column" in str(e).lower():
                    print(f"game_progress.{name} already exists. Skipping.")
                else:
                    raise

        conn.commit()
        print("Migration add_last_location_columns completed successfully!")

    except sqlite3.Error as e:
        print(f"Error during migration: {e}")
        if conn:
            conn.rollback()
    finally:
        if conn:
            conn.close()


if __name__ == "__main__":
    run_migration()
