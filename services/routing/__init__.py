"""
Routing Service

Quotes every registered liquidity source and executes swaps on the winner.
"""

from .engine import RoutingEngine
from .venues import LiquiditySource, SimulatedLiquiditySource, VenueProfile, build_liquidity_sources

__all__ = [
    "RoutingEngine",
    "LiquiditySource",
    "SimulatedLiquiditySource",
    "VenueProfile",
    "build_liquidity_sources",
]
