"""OAuth 2.0 protocol client."""
