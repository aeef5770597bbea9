"""
Sites app - tenant configuration read by the settlement core.

Owns the per-tenant records the payments app consults but never mutates
outside webhook ingestion:
- Site: a storefront, its owner contact and Stripe customer id
- SiteSeller: the connected payout account and payout stop flags
- PlatformSettings: the global kill switch and payout hold period
"""
