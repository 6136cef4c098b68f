"""Data source registry and live connections."""
