"""
Utilities package initialization.
"""
from .logger import get_logger, log_business_event, log_performance, setup_logging
from .time import utc_now, utc_day

__all__ = ["get_logger", "log_business_event", "log_performance", "setup_logging", "utc_now", "utc_day"]
