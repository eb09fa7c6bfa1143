"""Distribution sources and their value types."""
