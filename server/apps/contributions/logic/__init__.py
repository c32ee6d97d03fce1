"""Business logic for contribution intake."""
