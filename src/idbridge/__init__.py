"""Federated login core.

Authenticates users against external OIDC and OAuth2 identity providers,
reconciles them against local accounts and provisions first-login state.
"""

__version__ = "0.1.0"
