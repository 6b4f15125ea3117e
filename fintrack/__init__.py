"""
Fintrack - Source Package

Business logic for a personal-finance tracker with shared accounts:
plan-tier quotas, shared account membership and invitations,
balance reconstruction analytics and Stripe billing glue.

DESIGN PRINCIPLES:
1. Every rule is enforced where the data is served, not where it is rendered
2. Fail early, fail visibly (typed errors with human-readable messages)
3. Multi-document writes that must agree are committed as one batch
4. Every state change is auditable
5. Storage layer is swappable (Firestore in production, in-memory in tests)
"""

__version__ = "0.1.0"
__author__ = "Fintrack Team"
