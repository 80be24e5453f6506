# src/messaging/domain/__init__.py
"""Messaging domain: conversations, messages, delivery state."""
