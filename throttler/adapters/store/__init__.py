"""Shared counter store clients."""
