"""
Profile persistence.
"""

from .profiles import JsonProfileStore, SEED_PROFILES

__all__ = ['JsonProfileStore', 'SEED_PROFILES']
