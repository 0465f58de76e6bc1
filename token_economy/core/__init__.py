"""
Core modules for Token Economy.

This package contains task classification, pricing, tier routing,
and the budget admission gate.
"""
