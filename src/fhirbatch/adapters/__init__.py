"""Adapters binding the batch engine to concrete services."""
