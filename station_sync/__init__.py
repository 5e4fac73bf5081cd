"""
Station Sync

Migration and sync tools that copy Station-2100 data from Supabase into a
MySQL shadow database.

Supports:
- users/profiles sync with merge-on-update (CLI and admin HTTP endpoint)
- whole-table migration with DDL generated from source metadata or sample rows
- loading MySQL data dump files with per-table column renames
- MySQL health checks and row count verification
- a watchdog that restarts the dev server when its health check fails
"""

__version__ = "0.1.0"
