"""
Best-quote routing across registered liquidity sources.
"""

import asyncio
from decimal import Decimal
from typing import Dict, Mapping, Optional

from core.logging import get_trading_logger_safe
from core.monitoring.prometheus_metrics import OrderPipelineMetrics
from core.schemas.orders import Quote, RoutedQuote, SwapResult
from core.utils.exceptions import (
    NoRouteAvailableError,
    QuoteUnavailableError,
    SwapExecutionError,
    UnknownSourceError,
)

from .venues import LiquiditySource


class RoutingEngine:
    """Selects the source with the best effective price and executes swaps on it.

    Sources are kept in registration order. When two quotes have the same
    effective price the earlier-registered source wins.
    """

    def __init__(self, sources: Mapping[str, LiquiditySource],
                 metrics: Optional[OrderPipelineMetrics] = None):
        if not sources:
            raise ValueError("RoutingEngine requires at least one liquidity source")
        self._sources: Dict[str, LiquiditySource] = dict(sources)
        self.metrics = metrics
        self.logger = get_trading_logger_safe("routing")

    def _get_source(self, source: str) -> LiquiditySource:
        try:
            return self._sources[source]
        except KeyError:
            raise UnknownSourceError(source) from None

    async def get_quote(self, source: str, token_in: str, token_out: str, amount: Decimal) -> Quote:
        adapter = self._get_source(source)
        try:
            return await adapter.get_quote(token_in, token_out, amount)
        except Exception as e:
            if self.metrics:
                self.metrics.record_quote_failure(source)
            raise QuoteUnavailableError(f"{source} quote failed: {e}", source=source) from e

    async def get_best_quote(self, token_in: str, token_out: str, amount: Decimal) -> RoutedQuote:
        names = list(self._sources)
        results = await asyncio.gather(
            *(self.get_quote(name, token_in, token_out, amount) for name in names),
            return_exceptions=True,
        )

        best: Optional[RoutedQuote] = None
        best_price: Optional[Decimal] = None
        failures: Dict[str, str] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                failures[name] = str(result)
                self.logger.warning("Quote unavailable", source=name, error=str(result))
                continue
            effective = result.effective_price
            # Strictly greater: ties keep the earlier-registered source
            if best_price is None or effective > best_price:
                best = RoutedQuote(source=name, quote=result)
                best_price = effective

        if best is None:
            raise NoRouteAvailableError(
                f"No liquidity source could quote {token_in}/{token_out}", failures=failures
            )

        if self.metrics:
            self.metrics.record_route_selected(best.source)
        self.logger.info(
            "Route selected",
            pair=f"{token_in}/{token_out}",
            source=best.source,
            effective_price=float(best_price),
            quoted_sources=len(names) - len(failures),
        )
        return best

    async def execute_swap(self, source: str, token_in: str, token_out: str, amount: Decimal,
                           expected_price: Decimal) -> SwapResult:
        adapter = self._get_source(source)
        try:
            return await adapter.execute_swap(token_in, token_out, amount, expected_price)
        except Exception as e:
            raise SwapExecutionError(str(e), source=source) from e
