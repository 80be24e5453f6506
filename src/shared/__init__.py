"""
Shared Layer - Cross-Cutting Concerns
Domain kernel, error contract, and infrastructure (logging, events, encryption)
"""
