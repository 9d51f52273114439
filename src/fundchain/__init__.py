"""
FundChain client core: campaign derivation, eligibility and action orchestration
over an external crowdfunding ledger.
"""

__version__ = "0.1.0"
