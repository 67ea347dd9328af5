"""
Utility modules for the scheduling engine.

This package contains shared helpers used across the application, including
datetime utilities, repository query helpers, identifiers, pricing and retry.
"""
