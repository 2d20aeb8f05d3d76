"""Demo FastAPI application."""
