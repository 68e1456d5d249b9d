"""
Structured logging for Backend TrustScore.

JSON logs with timestamp, address, event_type and finding details.
Use get_logger() in all engine modules for aggregation-friendly output.
"""

from backend_trustscore.logging.logger import address_context, configure_structlog, get_logger

__all__ = ["address_context", "configure_structlog", "get_logger"]
