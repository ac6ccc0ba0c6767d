"""Document export."""
