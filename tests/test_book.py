"""Tests for order book ladders and decimal parsing."""

from decimal import Decimal

import pytest

from arb_scanner.orderbook import BookSide, TokenBook, best_ask_from_levels, parse_levels, to_decimal


class TestToDecimal:

    @pytest.mark.parametrize("value,expected", [
        ("0.52", Decimal("0.52")),
        (0.1, Decimal("0.1")),
        (3, Decimal("3")),
        (" 1.50 ", Decimal("1.50")),
    ])
    def test_valid(self, value, expected):
        assert to_decimal(value) == expected

    @pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity", True, None])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)


class TestBookSide:

    def test_asks_sorted_ascending(self):
        side = BookSide(is_bid=False)
        side.set_snapshot([(Decimal("0.6"), Decimal("1")), (Decimal("0.5"), Decimal("2"))])
        assert side.best.price == Decimal("0.5")

    def test_bids_sorted_descending(self):
        side = BookSide(is_bid=True)
        side.set_snapshot([(Decimal("0.3"), Decimal("1")), (Decimal("0.4"), Decimal("2"))])
        assert side.best.price == Decimal("0.4")

    def test_zero_size_removes_level(self):
        side = BookSide(is_bid=False)
        side.update(Decimal("0.5"), Decimal("2"))
        side.update(Decimal("0.5"), Decimal("0"))
        assert side.best is None
        assert len(side) == 0

    def test_snapshot_drops_empty_levels(self):
        side = BookSide(is_bid=False)
        side.set_snapshot([(Decimal("0.5"), Decimal("0")), (Decimal("0.7"), Decimal("3"))])
        assert side.best.price == Decimal("0.7")


class TestTokenBook:

    def test_sell_updates_asks(self):
        book = TokenBook("t")
        assert book.update_level("sell", Decimal("0.6"), Decimal("7"), source_timestamp=9)

        assert book.best_ask.size == Decimal("7")
        assert book.source_timestamp == 9

    def test_buy_is_ignored(self):
        book = TokenBook("t")
        book.update_level("SELL", Decimal("0.6"), Decimal("7"), source_timestamp=9)

        assert not book.update_level("BUY", Decimal("0.4"), Decimal("5"), source_timestamp=10)
        assert book.best_ask.price == Decimal("0.6")
        assert book.source_timestamp == 9

    def test_unknown_side(self):
        with pytest.raises(ValueError):
            TokenBook("t").update_level("HOLD", Decimal("0.4"), Decimal("1"))


class TestRawLevels:

    def test_best_ask_ignores_list_order(self):
        raw = [{"price": "0.99", "size": "10"}, {"price": "0.55", "size": "4"}, {"price": "0.60", "size": "1"}]
        best = best_ask_from_levels(raw)
        assert (best.price, best.size) == (Decimal("0.55"), Decimal("4"))

    def test_empty(self):
        assert best_ask_from_levels([]) is None
        assert best_ask_from_levels(None) is None
        assert parse_levels(None) == []
