"""
RYT DID API Routes Package
Provides session (wizard) and profile endpoints.
"""

from did_onboarding.routes import sessions, profile

__all__ = ['sessions', 'profile']
