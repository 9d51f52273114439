"""
Wallet session context.
"""
