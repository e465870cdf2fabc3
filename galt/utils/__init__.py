"""
Utilities Module
================

Common utilities shared across the application:
- logger: Context-prefixed logging
- config: Centralized configuration management
- metrics: Daily usage counters and cost estimates
"""

from galt.utils.logger import Logger, logger
from galt.utils.config import get_config, Config
from galt.utils.metrics import MetricsRecorder, Pricing

__all__ = ["Logger", "logger", "get_config", "Config", "MetricsRecorder", "Pricing"]
