"""Infrastructure adapters (cluster API)."""
