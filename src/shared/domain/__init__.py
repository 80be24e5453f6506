"""
Shared Domain Kernel
"""
from src.shared.domain.base_entity import BaseEntity, utc_now
from src.shared.domain.domain_event import DomainEvent

__all__ = ["BaseEntity", "DomainEvent", "utc_now"]
