"""
Marketplace settlement: payments, connected accounts, payouts and webhooks.
"""
