"""
Entitlements engine.

Reconciles trial credits, subscription status, metered token usage and the
tier-gated personality catalog into one Entitlements value per request.
"""
