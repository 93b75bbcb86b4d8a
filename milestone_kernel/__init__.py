"""
Milestone Kernel

A governance and fund-accounting engine for milestone-based crowdfunding:
- Governance tokens minted per contribution and spent as voting weight
- One weighted vote per voter per milestone, tallied by strict majority
- Forward-only milestone lifecycle driven by the tally
- Append-only funding ledger reconciled against the cached funded amount
"""

__version__ = "0.1.0"
