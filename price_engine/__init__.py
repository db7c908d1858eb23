"""
Price Engine Service
====================

Price resolution and audit engine for the Marketbel B2B marketplace.

Features:
- Default (supplier-wide) and private (per-company) product prices
- Fixed private prices or percentage discounts off the default price
- Append-only audit trail written in the same transaction as every change
- Best-effort price change notifications over Redis pub/sub
- Price view tracking for supplier analytics
"""

__version__ = "1.0.0"
