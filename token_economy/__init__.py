"""
Token Economy.

Task classification, model tier routing with escalation, and budget
admission control for language-model workloads.
"""

__version__ = "0.1.0"
