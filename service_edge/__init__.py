"""Edge gateway service package."""
