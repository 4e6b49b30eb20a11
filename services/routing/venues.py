import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Tuple

from core.config.settings import Settings
from core.logging import get_trading_logger_safe
from core.schemas.orders import Quote, SwapResult
from core.utils.exceptions import UnknownSourceError


class LiquiditySource(ABC):
    """Abstract base class for venues that quote and execute swaps."""

    name: str

    @abstractmethod
    async def get_quote(self, token_in: str, token_out: str, amount: Decimal) -> Quote:
        """Return a priced offer for swapping `amount` of token_in into token_out."""
        pass

    @abstractmethod
    async def execute_swap(self, token_in: str, token_out: str, amount: Decimal,
                           expected_price: Decimal) -> SwapResult:
        """Execute the swap. Irreversible once it returns."""
        pass


@dataclass(frozen=True)
class VenueProfile:
    """Pricing and behaviour envelope of a simulated venue"""
    price_variation: Tuple[float, float]
    fee: Decimal
    liquidity: Tuple[float, float]
    gas: Tuple[float, float]
    quote_latency_ms: Tuple[int, int]
    swap_latency_ms: Tuple[int, int] = (2000, 4000)
    max_slippage: float = 0.02


VENUE_PROFILES: Dict[str, VenueProfile] = {
    "raydium": VenueProfile(
        price_variation=(0.98, 1.02),
        fee=Decimal("0.003"),
        liquidity=(1_000_000, 6_000_000),
        gas=(0.0001, 0.0003),
        quote_latency_ms=(150, 300),
    ),
    "meteora": VenueProfile(
        price_variation=(0.97, 1.02),
        fee=Decimal("0.002"),
        liquidity=(800_000, 4_800_000),
        gas=(0.00015, 0.0004),
        quote_latency_ms=(200, 400),
    ),
}

# Reference mid prices; reverse pairs use the reciprocal
BASE_PRICES: Dict[str, Decimal] = {
    "SOL/USDC": Decimal("100"),
    "SOL/USDT": Decimal("99.8"),
    "ETH/USDC": Decimal("2000"),
    "ETH/SOL": Decimal("20"),
    "BTC/USDC": Decimal("45000"),
    "USDC/SOL": Decimal("0.01"),
    "USDT/SOL": Decimal("0.01002"),
}
DEFAULT_BASE_PRICE = Decimal("100")


def get_base_price(token_in: str, token_out: str) -> Decimal:
    pair = f"{token_in}/{token_out}"
    reverse_pair = f"{token_out}/{token_in}"
    if pair in BASE_PRICES:
        return BASE_PRICES[pair]
    if reverse_pair in BASE_PRICES:
        return Decimal(1) / BASE_PRICES[reverse_pair]
    return DEFAULT_BASE_PRICE


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


class SimulatedLiquiditySource(LiquiditySource):
    """
    Development venue producing randomized quotes and swaps.

    All randomness comes from the injected `rng` so a seeded instance
    reproduces the same quote, slippage and failure sequence.
    """

    def __init__(self, name: str, profile: VenueProfile, rng: Optional[random.Random] = None,
                 failure_rate: float = 0.05, simulate_latency: bool = True):
        self.name = name
        self.profile = profile
        self.rng = rng or random.Random()
        self.failure_rate = failure_rate
        self.simulate_latency = simulate_latency
        self.logger = get_trading_logger_safe("venue").bind(source=name)

    async def get_quote(self, token_in: str, token_out: str, amount: Decimal) -> Quote:
        await self._simulate_delay(*self.profile.quote_latency_ms)
        base_price = get_base_price(token_in, token_out)
        variation = _dec(self.rng.uniform(*self.profile.price_variation))

        return Quote(
            price=base_price * variation,
            fee=self.profile.fee,
            liquidity=_dec(self.rng.uniform(*self.profile.liquidity)),
            estimated_gas=_dec(self.rng.uniform(*self.profile.gas)),
        )

    async def execute_swap(self, token_in: str, token_out: str, amount: Decimal,
                           expected_price: Decimal) -> SwapResult:
        await self._simulate_delay(*self.profile.swap_latency_ms)
        slippage = _dec(self.rng.uniform(0, self.profile.max_slippage))
        executed_price = expected_price * (Decimal(1) - slippage)

        if self.rng.random() < self.failure_rate:
            raise RuntimeError(f"{self.name} swap failed: Network congestion")

        result = SwapResult(
            tx_hash=self._generate_tx_hash(),
            executed_price=executed_price,
            actual_amount=amount * executed_price,
            gas_used=_dec(self.rng.uniform(0.0001, 0.0004)),
        )
        self.logger.debug("Simulated swap executed", pair=f"{token_in}/{token_out}",
                          tx_hash=result.tx_hash, slippage=float(slippage))
        return result

    async def _simulate_delay(self, min_ms: int, max_ms: int) -> None:
        if not self.simulate_latency:
            return
        await asyncio.sleep(self.rng.uniform(min_ms, max_ms) / 1000.0)

    def _generate_tx_hash(self) -> str:
        return "0x" + "".join(self.rng.choice("0123456789abcdef") for _ in range(64))


def build_liquidity_sources(settings: Settings,
                            rng: Optional[random.Random] = None) -> Dict[str, LiquiditySource]:
    """Create simulated venues in configured order (first listed wins ties)."""
    routing = settings.routing
    rng = rng or random.Random(routing.seed)
    sources: Dict[str, LiquiditySource] = {}
    for name in routing.sources:
        profile = VENUE_PROFILES.get(name)
        if profile is None:
            raise UnknownSourceError(name)
        sources[name] = SimulatedLiquiditySource(
            name,
            profile,
            rng=rng,
            failure_rate=routing.failure_rate,
            simulate_latency=routing.simulate_latency,
        )
    return sources