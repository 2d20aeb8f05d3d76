"""Shared utilities: errors, models, PKCE, security and logging."""
