import random
from decimal import Decimal

import pytest

from core.utils.exceptions import (
    NoRouteAvailableError,
    QuoteUnavailableError,
    SwapExecutionError,
    UnknownSourceError,
)
from services.routing import RoutingEngine, SimulatedLiquiditySource, build_liquidity_sources
from services.routing.venues import VENUE_PROFILES, get_base_price
from tests.mocks.order_engine_fakes import StaticLiquiditySource


class TestBestQuoteSelection:
    @pytest.mark.asyncio
    async def test_highest_effective_price_wins(self):
        engine = RoutingEngine({
            "raydium": StaticLiquiditySource("raydium", price="97.0"),
            "meteora": StaticLiquiditySource("meteora", price="98.2"),
        })
        best = await engine.get_best_quote("SOL", "USDC", Decimal("100"))
        assert best.source == "meteora"
        assert best.quote.effective_price == Decimal("98.2")

    @pytest.mark.asyncio
    async def test_fees_and_gas_decide_not_raw_price(self):
        engine = RoutingEngine({
            "raydium": StaticLiquiditySource("raydium", price="100", fee="0.05"),
            "meteora": StaticLiquiditySource("meteora", price="99", fee="0.002"),
        })
        best = await engine.get_best_quote("SOL", "USDC", Decimal("1"))
        assert best.source == "meteora"

    @pytest.mark.asyncio
    async def test_tie_goes_to_first_registered_source(self):
        for _ in range(5):
            engine = RoutingEngine({
                "raydium": StaticLiquiditySource("raydium", price="98.0"),
                "meteora": StaticLiquiditySource("meteora", price="98.0"),
            })
            best = await engine.get_best_quote("SOL", "USDC", Decimal("1"))
            assert best.source == "raydium"

        reversed_engine = RoutingEngine({
            "meteora": StaticLiquiditySource("meteora", price="98.0"),
            "raydium": StaticLiquiditySource("raydium", price="98.0"),
        })
        assert (await reversed_engine.get_best_quote("SOL", "USDC", Decimal("1"))).source == "meteora"

    @pytest.mark.asyncio
    async def test_failing_source_is_skipped(self, metrics):
        engine = RoutingEngine({
            "raydium": StaticLiquiditySource("raydium", price="101", fail_quote=True),
            "meteora": StaticLiquiditySource("meteora", price="98"),
        }, metrics=metrics)
        best = await engine.get_best_quote("SOL", "USDC", Decimal("1"))
        assert best.source == "meteora"
        assert metrics.registry.get_sample_value(
            "routing_quote_failures_total", {"source": "raydium"}) == 1.0
        assert metrics.registry.get_sample_value(
            "routing_selected_total", {"source": "meteora"}) == 1.0

    @pytest.mark.asyncio
    async def test_no_route_when_every_source_fails(self):
        engine = RoutingEngine({
            "raydium": StaticLiquiditySource("raydium", fail_quote=True),
            "meteora": StaticLiquiditySource("meteora", fail_quote=True),
        })
        with pytest.raises(NoRouteAvailableError) as exc_info:
            await engine.get_best_quote("SOL", "USDC", Decimal("1"))
        assert set(exc_info.value.failures) == {"raydium", "meteora"}


class TestQuotesAndSwaps:
    @pytest.mark.asyncio
    async def test_unknown_source_rejected(self, routing_engine):
        with pytest.raises(UnknownSourceError):
            await routing_engine.get_quote("orca", "SOL", "USDC", Decimal("1"))
        with pytest.raises(UnknownSourceError):
            await routing_engine.execute_swap("orca", "SOL", "USDC", Decimal("1"), Decimal("100"))

    @pytest.mark.asyncio
    async def test_adapter_quote_error_is_transient(self):
        engine = RoutingEngine({"raydium": StaticLiquiditySource("raydium", fail_quote=True)})
        with pytest.raises(QuoteUnavailableError) as exc_info:
            await engine.get_quote("raydium", "SOL", "USDC", Decimal("1"))
        assert exc_info.value.retryable
        assert exc_info.value.source == "raydium"

    @pytest.mark.asyncio
    async def test_swap_failure_wrapped_as_execution_error(self):
        venue = StaticLiquiditySource("raydium", swap_failures=1)
        engine = RoutingEngine({"raydium": venue})
        with pytest.raises(SwapExecutionError, match="Network congestion"):
            await engine.execute_swap("raydium", "SOL", "USDC", Decimal("2"), Decimal("100"))

        result = await engine.execute_swap("raydium", "SOL", "USDC", Decimal("2"), Decimal("100"))
        assert result.actual_amount == Decimal("200")
        assert venue.swap_calls == 2

    def test_engine_requires_a_source(self):
        with pytest.raises(ValueError):
            RoutingEngine({})


class TestSimulatedVenues:
    def test_base_price_table_and_reciprocal(self):
        assert get_base_price("SOL", "USDC") == Decimal("100")
        assert get_base_price("USDC", "ETH") == Decimal(1) / Decimal("2000")
        assert get_base_price("FOO", "BAR") == Decimal("100")

    @pytest.mark.asyncio
    async def test_seeded_venue_is_reproducible(self):
        def venue(seed):
            return SimulatedLiquiditySource("raydium", VENUE_PROFILES["raydium"],
                                            rng=random.Random(seed), failure_rate=0.0,
                                            simulate_latency=False)

        first = await venue(7).get_quote("SOL", "USDC", Decimal("1"))
        second = await venue(7).get_quote("SOL", "USDC", Decimal("1"))
        assert first == second
        assert Decimal("98") <= first.price <= Decimal("102")
        assert first.fee == Decimal("0.003")

    @pytest.mark.asyncio
    async def test_simulated_swap_applies_bounded_slippage(self):
        source = SimulatedLiquiditySource("meteora", VENUE_PROFILES["meteora"],
                                          rng=random.Random(3), failure_rate=0.0,
                                          simulate_latency=False)
        result = await source.execute_swap("SOL", "USDC", Decimal("10"), Decimal("100"))
        assert Decimal("98") <= result.executed_price <= Decimal("100")
        assert result.tx_hash.startswith("0x") and len(result.tx_hash) == 66

    @pytest.mark.asyncio
    async def test_simulated_swap_can_fail(self):
        source = SimulatedLiquiditySource("raydium", VENUE_PROFILES["raydium"],
                                          rng=random.Random(1), failure_rate=1.0,
                                          simulate_latency=False)
        with pytest.raises(RuntimeError, match="raydium swap failed"):
            await source.execute_swap("SOL", "USDC", Decimal("1"), Decimal("100"))

    def test_sources_built_in_configured_order(self, test_settings):
        test_settings.routing.sources = ["meteora", "raydium"]
        sources = build_liquidity_sources(test_settings, rng=random.Random(0))
        assert list(sources) == ["meteora", "raydium"]

    def test_unknown_configured_source_rejected(self, test_settings):
        test_settings.routing.sources = ["raydium", "orca"]
        with pytest.raises(UnknownSourceError):
            build_liquidity_sources(test_settings)
