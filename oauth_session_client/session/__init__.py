"""Session authentication and FastAPI integration."""
