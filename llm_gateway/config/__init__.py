"""Model and application configuration."""
