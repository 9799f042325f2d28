"""Worker endpoints."""
