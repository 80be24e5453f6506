"""
Shared Infrastructure Layer
Event bus, security, and observability
"""
