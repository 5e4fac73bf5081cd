"""HTTP API for triggering syncs and checking the target."""
