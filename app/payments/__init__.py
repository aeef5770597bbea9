"""
Payments app for Stripe settlement.

This app handles:
- Checkout webhook ingestion into orders and escrows
- Escrow release to seller connected accounts (scheduled, per-site, single)
- Reaping of escrows stuck mid-release
- Order refunds and the manual hold they place on unpaid escrows
- Owner and buyer order notifications

Related apps:
    - sites: Site, seller and platform payout settings

Usage:
    from payments.escrow import ReleaseOrchestrator

    summary = ReleaseOrchestrator.run(limit=100)
    print(summary.to_dict())
"""
