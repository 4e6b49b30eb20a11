"""
Logging channel definitions for the order execution engine.
Every structured event carries a `channel` field so downstream collectors can split streams.
"""

from enum import Enum
from typing import Dict
from dataclasses import dataclass


class LogChannel(str, Enum):
    """Logging channels for different components."""

    APPLICATION = "application"  # General application logs
    TRADING = "trading"          # Order pipeline, routing, swaps
    DATABASE = "database"        # Store and cache operations
    API = "api"                  # API requests/responses and websockets
    MONITORING = "monitoring"    # Queue stats, stall detection, fanout sweeps
    ERROR = "error"              # Error logs


@dataclass
class ChannelConfig:
    """Configuration for a logging channel."""

    name: str
    level: str = "INFO"


# Channel configurations
CHANNEL_CONFIGS: Dict[LogChannel, ChannelConfig] = {
    LogChannel.APPLICATION: ChannelConfig(name="application"),
    LogChannel.TRADING: ChannelConfig(name="trading"),
    LogChannel.DATABASE: ChannelConfig(name="database", level="WARNING"),
    LogChannel.API: ChannelConfig(name="api"),
    LogChannel.MONITORING: ChannelConfig(name="monitoring"),
    LogChannel.ERROR: ChannelConfig(name="error", level="ERROR"),
}


# Component to channel mapping
COMPONENT_CHANNEL_MAP = {
    "order_processor": LogChannel.TRADING,
    "order_service": LogChannel.TRADING,
    "routing": LogChannel.TRADING,
    "venue": LogChannel.TRADING,
    "repository": LogChannel.DATABASE,
    "cache": LogChannel.DATABASE,
    "database": LogChannel.DATABASE,
    "api": LogChannel.API,
    "websocket": LogChannel.API,
    "fanout": LogChannel.API,
    "queue": LogChannel.MONITORING,
    "metrics": LogChannel.MONITORING,
    "error": LogChannel.ERROR,
}


def get_channel_for_component(component: str) -> LogChannel:
    """Get the appropriate logging channel for a component."""
    return COMPONENT_CHANNEL_MAP.get(component, LogChannel.APPLICATION)


def get_channel_config(channel: LogChannel) -> ChannelConfig:
    """Get configuration for a specific channel."""
    return CHANNEL_CONFIGS[channel]
