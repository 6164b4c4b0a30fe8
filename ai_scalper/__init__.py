"""
AI-assisted intraday scalping bot for Alpaca paper accounts.
"""
__version__ = "0.1.0"
