from __future__ import annotations

import json
from pathlib import Path

import pytest

from pump_trader.portfolio.ledger import PositionLedger


def _open(ledger: PositionLedger, price: float = 1.0, quantity: float = 100.0, sol: float = 100.0):
    return ledger.add_position("mintA", "Alpha", "ALP", price, quantity, sol, 10.0, 20.0)


def test_add_position_sets_thresholds(tmp_path: Path) -> None:
    ledger = PositionLedger(tmp_path)
    position = _open(ledger)

    assert position.status == "open"
    assert position.entry_price == 1.0
    assert position.amount == 100.0
    assert position.stop_loss == pytest.approx(0.9)
    assert position.take_profit == pytest.approx(1.2)
    assert ledger.get_portfolio().total_invested_sol == 100.0


def test_second_buy_merges_with_cost_weighted_entry(tmp_path: Path) -> None:
    ledger = PositionLedger(tmp_path)
    _open(ledger)
    merged = ledger.add_position("mintA", "Alpha", "ALP", 1.2, 50.0, 60.0, 10.0, 20.0)

    assert len(ledger.get_positions_for_token("mintA")) == 1
    assert merged.amount == 150.0
    assert merged.entry_price == pytest.approx(160.0 / 150.0)
    assert merged.stop_loss == pytest.approx(merged.entry_price * 0.9)
    assert merged.take_profit == pytest.approx(merged.entry_price * 1.2)
    assert ledger.get_portfolio().total_invested_sol == pytest.approx(160.0)


def test_add_position_rejects_non_positive_values(tmp_path: Path) -> None:
    ledger = PositionLedger(tmp_path)
    with pytest.raises(ValueError, match="price_must_be_positive"):
        ledger.add_position("mintA", "Alpha", "ALP", 0.0, 10.0, 1.0, 10.0, 20.0)
    with pytest.raises(ValueError, match="quantity_must_be_positive"):
        ledger.add_position("mintA", "Alpha", "ALP", 1.0, 0.0, 1.0, 10.0, 20.0)
    assert ledger.get_positions() == []


def test_partial_then_full_close(tmp_path: Path) -> None:
    ledger = PositionLedger(tmp_path)
    _open(ledger)

    partial = ledger.close_position("mintA", 1.5, 50.0, 50.0)
    assert partial is not None
    assert partial.status == "open"
    assert partial.amount == 50.0
    assert ledger.get_portfolio().realized_pnl == pytest.approx(25.0)

    closed = ledger.close_position("mintA", 2.0, 50.0, 100.0)
    assert closed is not None
    assert closed.status == "closed"
    assert closed.exit_price == 2.0
    assert closed.pnl == pytest.approx(50.0)
    assert ledger.get_portfolio().realized_pnl == pytest.approx(75.0)
    assert ledger.get_open_position_for_token("mintA") is None


def test_selling_whole_quantity_closes_even_below_100_percent(tmp_path: Path) -> None:
    ledger = PositionLedger(tmp_path)
    _open(ledger)
    closed = ledger.close_position("mintA", 0.5, 100.0, 40.0)
    assert closed is not None
    assert closed.status == "closed"
    assert ledger.get_portfolio().realized_pnl == pytest.approx(-50.0)


def test_close_without_open_position_is_a_noop(tmp_path: Path) -> None:
    ledger = PositionLedger(tmp_path)
    assert ledger.close_position("missing", 1.0, 1.0, 100.0) is None
    assert ledger.get_portfolio().realized_pnl == 0.0


def test_buy_after_close_opens_new_lineage(tmp_path: Path) -> None:
    ledger = PositionLedger(tmp_path)
    _open(ledger)
    ledger.close_position("mintA", 1.1, 100.0, 100.0)
    reopened = _open(ledger, price=2.0, quantity=10.0, sol=20.0)

    positions = ledger.get_positions_for_token("mintA")
    assert [p.status for p in positions] == ["closed", "open"]
    assert reopened.entry_price == 2.0
    assert ledger.get_open_positions() == [reopened]


def test_unrealized_pnl_overwrites_and_skips_unpriced(tmp_path: Path) -> None:
    ledger = PositionLedger(tmp_path)
    _open(ledger)
    ledger.add_position("mintB", "Beta", "BET", 2.0, 10.0, 20.0, 10.0, 20.0)

    assert ledger.update_unrealized_pnl({"mintA": 1.1}) == pytest.approx(10.0)
    assert ledger.update_unrealized_pnl({"mintA": 0.9, "mintB": 3.0}) == pytest.approx(0.0)
    assert ledger.get_portfolio().unrealized_pnl == pytest.approx(0.0)
    assert ledger.get_total_value() == pytest.approx(120.0)


def test_exit_signals(tmp_path: Path) -> None:
    ledger = PositionLedger(tmp_path)
    _open(ledger)
    ledger.add_position("mintB", "Beta", "BET", 2.0, 10.0, 20.0, 10.0, 20.0)

    signals = ledger.check_positions_for_exit_signals({"mintA": 0.89, "mintB": 2.1})
    assert [p.mint for p in signals] == ["mintA"]


def test_portfolio_copy_is_detached(tmp_path: Path) -> None:
    ledger = PositionLedger(tmp_path)
    _open(ledger)
    snapshot = ledger.get_portfolio()
    snapshot.positions[0].amount = 0.0
    snapshot.realized_pnl = 999.0

    assert ledger.get_open_position_for_token("mintA").amount == 100.0
    assert ledger.get_portfolio().realized_pnl == 0.0


def test_state_survives_restart(tmp_path: Path) -> None:
    ledger = PositionLedger(tmp_path)
    _open(ledger)
    ledger.close_position("mintA", 1.5, 40.0, 40.0)

    reloaded = PositionLedger(tmp_path)
    position = reloaded.get_open_position_for_token("mintA")
    assert position is not None
    assert position.amount == pytest.approx(60.0)
    assert reloaded.get_portfolio().realized_pnl == pytest.approx(20.0)

    raw = json.loads(reloaded.state_file.read_text(encoding="utf-8"))
    assert raw["positions"][0]["mint"] == "mintA"


def test_unreadable_snapshot_starts_empty(tmp_path: Path) -> None:
    (tmp_path / "portfolio.json").write_text("{not json", encoding="utf-8")
    ledger = PositionLedger(tmp_path)
    assert ledger.get_positions() == []
    _open(ledger)
    assert len(PositionLedger(tmp_path).get_positions()) == 1
