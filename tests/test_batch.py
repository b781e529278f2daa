from functools import partial

import anyio
import pytest

from stockline.core.balances import BalanceCache
from stockline.core.batch import BatchAggregator
from stockline.core.errors import (
    InsufficientStockError,
    InvalidMovementError,
    PartialBatchFailure,
    StoreError,
)
from stockline.core.movements import MovementEngine

AA = "AA-01-01-01"
BB = "BB-02-02-02"
CC = "CC-03-03-03"


@pytest.fixture()
def cart(store):
    return BatchAggregator(MovementEngine(store, BalanceCache(store)))


def _fill(cart, *codes):
    for code in codes:
        cart.add_or_increment(code)


def test_add_or_increment_aggregates_by_code(cart):
    _fill(cart, AA, BB, AA, CC, CC, CC)

    assert [(line.product_code, line.qty) for line in cart.lines] == [
        (AA, 2),
        (BB, 1),
        (CC, 3),
    ]
    assert cart.total_units() == 6
    assert len(cart) == 3


def test_set_qty_and_remove(cart):
    _fill(cart, AA, BB)

    cart.set_qty(AA, 5)
    cart.remove(BB)
    cart.remove(CC)

    assert [(line.product_code, line.qty) for line in cart.lines] == [(AA, 5)]


def test_set_qty_rejects_zero_and_unknown_codes(cart):
    _fill(cart, AA)

    with pytest.raises(InvalidMovementError):
        cart.set_qty(AA, 0)
    with pytest.raises(InvalidMovementError):
        cart.set_qty(BB, 2)


def test_submit_empty_cart_rejected(cart):
    with pytest.raises(InvalidMovementError, match="empty"):
        anyio.run(partial(cart.submit, "receive", to_location="L1"))


def test_batch_receive_applies_each_line_in_order(store, cart):
    _fill(cart, AA, AA, BB, CC, CC, CC)

    result = anyio.run(partial(cart.submit, "receive", to_location="L1"))

    assert [line.product_code for line in result.succeeded] == [AA, BB, CC]
    assert result.failed == []
    assert result.units_succeeded == 6
    assert [w[1] for w in store.writes] == [AA, BB, CC]
    assert store.by_location[(CC, "L1")] == 3
    assert cart.lines == []
    result.raise_for_failures()


def test_partial_failure_keeps_only_failed_lines(store, cart):
    store.set_balance(AA, "L1", 2)
    store.set_balance(BB, "L1", 0)
    store.set_balance(CC, "L1", 3)
    _fill(cart, AA, AA, BB, CC, CC, CC)

    result = anyio.run(partial(cart.submit, "send", from_location="L1"))

    assert [line.product_code for line in result.succeeded] == [AA, CC]
    assert [(f.line.product_code, f.line.qty) for f in result.failed] == [(BB, 1)]
    assert isinstance(result.failed[0].error, InsufficientStockError)
    assert result.units_succeeded == 5
    assert [(line.product_code, line.qty) for line in cart.lines] == [(BB, 1)]

    with pytest.raises(PartialBatchFailure) as exc:
        result.raise_for_failures()
    assert exc.value.result is result
    assert "1 of 3" in str(exc.value)


def test_store_failure_on_one_line_does_not_stop_the_batch(store, cart):
    store.fail("record_location_delta", when=lambda code, *rest: code == BB)
    _fill(cart, AA, BB, CC)

    result = anyio.run(partial(cart.submit, "receive", to_location="L2"))

    assert [line.product_code for line in result.succeeded] == [AA, CC]
    assert isinstance(result.failed[0].error, StoreError)
    assert [line.product_code for line in cart.lines] == [BB]


def test_retry_after_partial_failure(store, cart):
    store.set_balance(AA, "L1", 1)
    _fill(cart, AA, BB)

    first = anyio.run(partial(cart.submit, "send", from_location="L1"))
    assert [line.product_code for line in cart.lines] == [BB]

    store.set_balance(BB, "L1", 4)
    cart.set_qty(BB, 4)
    second = anyio.run(partial(cart.submit, "send", from_location="L1"))

    assert first.is_partial
    assert not second.is_partial
    assert second.units_succeeded == 4
    assert cart.lines == []


def test_batch_adjust_uses_line_qty_as_delta(store, cart):
    _fill(cart, AA, AA)

    result = anyio.run(partial(cart.submit, "adjust", reason="initial_count"))

    assert result.outcomes[0].movement.delta == 2
    assert store.adjustments[0].reason == "initial_count"


def test_shared_parameter_errors_fail_every_line(store, cart):
    _fill(cart, AA, BB)

    result = anyio.run(partial(cart.submit, "receive"))

    assert result.succeeded == []
    assert len(result.failed) == 2
    assert all(isinstance(f.error, InvalidMovementError) for f in result.failed)
    assert store.writes == []


def _submit_while(store, cart, gated, during, operation="receive", **shared):
    """Submit the cart, running during() while gated's first store call waits."""
    method, code = gated
    results = {}

    async def run_submit():
        results["result"] = await cart.submit(operation, **shared)

    async def main():
        release = store.gate(method, code)
        async with anyio.create_task_group() as tg:
            tg.start_soon(run_submit)
            while not any(c[:2] == (method, code) for c in store.calls):
                await anyio.sleep(0)
            during()
            release.set()

    anyio.run(main)
    return results["result"]


def test_lines_added_during_submit_stay_in_the_cart(store, cart):
    _fill(cart, AA)

    def scan_more():
        cart.add_or_increment(BB)
        cart.add_or_increment(AA)

    result = _submit_while(
        store, cart, ("record_location_delta", AA), scan_more, to_location="L1"
    )

    assert [(line.product_code, line.qty) for line in result.succeeded] == [(AA, 1)]
    assert result.units_succeeded == 1
    assert [(w[1], w[3]) for w in store.writes] == [(AA, 1)]
    assert [(line.product_code, line.qty) for line in cart.lines] == [(AA, 1), (BB, 1)]


def test_failed_line_keeps_units_added_during_submit(store, cart):
    _fill(cart, AA)

    result = _submit_while(
        store,
        cart,
        ("get_global_on_hand", AA),
        lambda: cart.add_or_increment(AA),
        operation="send",
        from_location="L1",
    )

    assert [(f.line.product_code, f.line.qty) for f in result.failed] == [(AA, 1)]
    assert [(line.product_code, line.qty) for line in cart.lines] == [(AA, 2)]


def test_line_lowered_during_submit_is_removed_once_applied(store, cart):
    _fill(cart, AA, AA, AA)

    result = _submit_while(
        store,
        cart,
        ("record_location_delta", AA),
        lambda: cart.set_qty(AA, 1),
        to_location="L1",
    )

    assert result.units_succeeded == 3
    assert cart.lines == []
