"""
Entitlements package.

Decides whether an API key may use the lookup endpoint, based on the key
registry in the object store and the customer's billing subscriptions.
"""

from .gate import EntitlementGate, EntitlementKind, EntitlementResult

__all__ = ["EntitlementGate", "EntitlementKind", "EntitlementResult"]
