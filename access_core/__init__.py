"""
Access core - authorization and entitlement evaluation for a multi-tenant SaaS.
"""
