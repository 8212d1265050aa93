"""Tests for the order status transition table."""

import pytest

from order_service.database.models.order import OrderStatus
from order_service.services.orders.state_machine import (
    get_allowed_transitions,
    is_transition_allowed,
)


@pytest.mark.parametrize("status", list(OrderStatus))
def test_same_status_always_allowed(status: OrderStatus):
    assert is_transition_allowed(status, status)


@pytest.mark.parametrize(
    "current,new,allowed",
    [
        (OrderStatus.PENDING, OrderStatus.CANCELLED, True),
        (OrderStatus.PAID, OrderStatus.CANCELLED, True),
        (OrderStatus.PENDING, OrderStatus.PAID, False),
        (OrderStatus.PAID, OrderStatus.PENDING, False),
        (OrderStatus.CANCELLED, OrderStatus.PENDING, False),
        (OrderStatus.CANCELLED, OrderStatus.PAID, False),
    ],
)
def test_transition_table(current: OrderStatus, new: OrderStatus, allowed: bool):
    assert is_transition_allowed(current, new) is allowed


def test_cancelled_is_terminal():
    assert get_allowed_transitions(OrderStatus.CANCELLED) == set()


def test_allowed_transitions_returns_copy():
    allowed = get_allowed_transitions(OrderStatus.PENDING)
    allowed.add(OrderStatus.PAID)

    assert not is_transition_allowed(OrderStatus.PENDING, OrderStatus.PAID)
