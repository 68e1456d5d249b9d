"""
Backend TrustScore: streaming fraud and reputation analytics for x402 payments.

Consumes facilitator-relayed stablecoin payment events, keeps an append-only
transaction store, and derives fraud findings and service/agent reputation
scores from it. Modular architecture with clear separation between ingestion,
analysis engine, reputation scoring, and the recomputation scheduler.
"""

__version__ = "0.1.0"
