"""HTTP API for the diary media and backup services."""
