"""Shared helpers used across the server and its clients."""
