"""HTTP front-end for sentinel (FastAPI)."""
