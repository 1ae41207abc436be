"""
Services package for the Policy Flow API.

Contains integrations that don't belong to the pure flow compiler,
such as forwarding flows to the policy backend.
"""

from app.services.policy_backend import PolicyBackendClient, get_policy_backend

__all__ = ["PolicyBackendClient", "get_policy_backend"]
