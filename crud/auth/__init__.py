"""OAuth login flow and the session-based authentication gate."""
