"""
Messaging bounded context: conversations, delivery, interactions, webhooks.
"""
