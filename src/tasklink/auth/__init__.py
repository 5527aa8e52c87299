"""Session and user administration."""
