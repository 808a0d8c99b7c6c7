"""DialDesk HTTP server (FastAPI)."""
