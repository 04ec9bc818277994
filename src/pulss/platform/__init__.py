"""
Pulss platform services.

Subscription billing and GST invoicing for multi-tenant deployments.
"""

__version__ = "1.0.0"
