"""Service layer for the tutor availability engine."""
