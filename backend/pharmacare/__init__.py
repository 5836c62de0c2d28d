"""
PharmaCare access and entitlement backend.

Tenant access resolution, session issuance, and subscription entitlement
for the PharmaCare clinical record keeping service.
"""

__version__ = "1.0.0"
