"""Edge gateway application."""
