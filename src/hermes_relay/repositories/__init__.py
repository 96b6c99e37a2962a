"""Repository implementations of the persistence port."""
