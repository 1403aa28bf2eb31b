"""
Marketplace entities that settlement operates on.

- Merchant: the selling company and its mirrored Stripe Connect state
- Order: a buyer's purchase from one merchant
"""
