"""FastAPI router modules."""
