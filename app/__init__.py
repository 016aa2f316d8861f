"""Event Check-In API Application."""
