"""
Tenancy bounded context: teams, provider credentials, per-team rate limits.
"""
