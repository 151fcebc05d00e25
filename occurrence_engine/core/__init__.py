"""Core utilities shared by the occurrence engine modules."""
