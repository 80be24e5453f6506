"""Messaging application services."""
