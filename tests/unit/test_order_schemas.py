import json
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from core.schemas.orders import (
    Order,
    OrderRequest,
    OrderStatus,
    OrderType,
    Quote,
    StatusMessage,
)


class TestOrderStatusTransitions:
    @pytest.mark.parametrize("current,target", [
        (OrderStatus.PENDING, OrderStatus.ROUTING),
        (OrderStatus.ROUTING, OrderStatus.BUILDING),
        (OrderStatus.BUILDING, OrderStatus.SUBMITTED),
        (OrderStatus.SUBMITTED, OrderStatus.CONFIRMED),
    ])
    def test_forward_steps_allowed(self, current, target):
        assert current.can_transition_to(target)

    @pytest.mark.parametrize("current", [
        OrderStatus.PENDING, OrderStatus.ROUTING, OrderStatus.BUILDING, OrderStatus.SUBMITTED,
    ])
    def test_failed_reachable_from_any_non_terminal(self, current):
        assert current.can_transition_to(OrderStatus.FAILED)

    def test_skipping_and_backwards_rejected(self):
        assert not OrderStatus.PENDING.can_transition_to(OrderStatus.BUILDING)
        assert not OrderStatus.BUILDING.can_transition_to(OrderStatus.ROUTING)
        assert not OrderStatus.PENDING.can_transition_to(OrderStatus.CONFIRMED)

    @pytest.mark.parametrize("terminal", [OrderStatus.CONFIRMED, OrderStatus.FAILED])
    def test_terminal_states_absorb(self, terminal):
        assert terminal.is_terminal
        assert all(not terminal.can_transition_to(s) for s in OrderStatus)

    def test_rank_orders_pipeline(self):
        ranks = [s.rank for s in (OrderStatus.PENDING, OrderStatus.ROUTING, OrderStatus.BUILDING,
                                  OrderStatus.SUBMITTED, OrderStatus.CONFIRMED)]
        assert ranks == sorted(ranks)
        assert OrderStatus.FAILED.rank == OrderStatus.CONFIRMED.rank


class TestOrderRequest:
    def test_camel_case_payload_accepted(self):
        request = OrderRequest.model_validate({"tokenIn": "SOL", "tokenOut": "USDC", "amount": 100})
        assert request.token_in == "SOL"
        assert request.amount == Decimal("100")
        assert request.type is OrderType.MARKET

    @pytest.mark.parametrize("payload", [
        {"tokenOut": "USDC", "amount": 1},
        {"tokenIn": "SOL", "tokenOut": "USDC", "amount": 0},
        {"tokenIn": "SOL", "tokenOut": "USDC", "amount": -5},
        {"tokenIn": "  ", "tokenOut": "USDC", "amount": 1},
        {"tokenIn": "SOL", "tokenOut": "sol", "amount": 1},
        {"tokenIn": "SOL", "tokenOut": "USDC", "amount": 1, "type": "stop"},
        {"tokenIn": "SOL", "tokenOut": "USDC", "amount": 1, "slippage": 2},
    ])
    def test_malformed_requests_rejected(self, payload):
        with pytest.raises(PydanticValidationError):
            OrderRequest.model_validate(payload)


class TestQuote:
    def test_effective_price_nets_fee_and_gas(self):
        quote = Quote(price=Decimal("100"), fee=Decimal("0.003"), liquidity=Decimal("1"),
                      estimated_gas=Decimal("0.0002"))
        assert quote.effective_price == Decimal("99.6998")

    def test_fee_must_be_fraction(self):
        with pytest.raises(PydanticValidationError):
            Quote(price=Decimal("1"), fee=Decimal("1"), liquidity=Decimal("1"))


class TestWireFormat:
    def test_order_json_is_camel_case(self):
        order = Order(id="order_1_abcdef12", token_in="SOL", token_out="USDC", amount=Decimal("2.5"))
        body = json.loads(order.to_json())
        assert body["tokenIn"] == "SOL"
        assert body["amount"] == 2.5
        assert body["status"] == "pending"
        assert "txHash" not in body

    def test_status_message_omits_empty_data(self):
        message = StatusMessage.for_transition("order_1", OrderStatus.ROUTING)
        body = json.loads(message.to_json())
        assert body["orderId"] == "order_1"
        assert body["status"] == "routing"
        assert "data" not in body
        assert "T" in body["timestamp"]

    def test_status_message_carries_execution_details(self):
        message = StatusMessage.for_transition("order_1", OrderStatus.CONFIRMED, {
            "tx_hash": "0xabc",
            "executed_price": Decimal("99.5"),
            "selected_route": "raydium",
        })
        body = json.loads(message.to_json())
        assert body["data"] == {"txHash": "0xabc", "executedPrice": 99.5, "selectedRoute": "raydium"}
