"""Shared-password authentication."""
