from __future__ import annotations

from pathlib import Path

import pytest

from pump_trader.exec.paper import PaperExecutor
from pump_trader.schemas import TradeProposal


def _buy(amount: float, mint: str = "m1") -> TradeProposal:
    return TradeProposal(
        action="buy", mint=mint, amount=amount, denominated_in_sol=True, slippage=1.0, priority_fee=0.0
    )


def _sell(amount: str, mint: str = "m1") -> TradeProposal:
    return TradeProposal(
        action="sell", mint=mint, amount=amount, denominated_in_sol=False, slippage=1.0, priority_fee=0.0
    )


@pytest.mark.asyncio
async def test_buy_then_sell_round_trip(tmp_path: Path) -> None:
    paper = PaperExecutor(tmp_path, initial_balance_sol=1.0, slippage_bps=0.0)
    paper.observe_price("m1", 0.01)

    bought = await paper.execute(_buy(0.2))
    assert bought.success
    assert bought.signature is not None and bought.signature.startswith("paper-")
    assert bought.token_amount == pytest.approx(20.0)
    assert await paper.get_balance() == pytest.approx(0.8)
    assert await paper.has_token("m1")

    paper.observe_price("m1", 0.02)
    sold = await paper.execute(_sell("50%"))
    assert sold.token_amount == pytest.approx(10.0)
    assert await paper.get_token_balance("m1") == pytest.approx(10.0)
    assert await paper.get_balance() == pytest.approx(1.0)

    await paper.execute(_sell("100%"))
    assert not await paper.has_token("m1")
    assert await paper.get_all_tokens() == {}


@pytest.mark.asyncio
async def test_buy_before_first_price_settles_later(tmp_path: Path) -> None:
    paper = PaperExecutor(tmp_path, slippage_bps=0.0)

    outcome = await paper.execute(_buy(0.2))
    assert outcome.success
    assert outcome.token_amount is None
    assert await paper.get_balance() == pytest.approx(0.8)
    assert not await paper.has_token("m1")

    paper.observe_price("m1", 0.1)
    assert await paper.get_token_balance("m1") == pytest.approx(2.0)


@pytest.mark.asyncio
async def test_rejections(tmp_path: Path) -> None:
    paper = PaperExecutor(tmp_path, initial_balance_sol=0.1)
    paper.observe_price("m1", 1.0)

    assert (await paper.execute(_buy(0.2))).error == "insufficient_balance"
    assert (await paper.execute(_sell("100%"))).error == "no_holdings"
    assert (await paper.execute(_sell("100%", mint="unpriced"))).error == "paper_sell_requires_observed_price"


@pytest.mark.asyncio
async def test_state_is_persisted(tmp_path: Path) -> None:
    paper = PaperExecutor(tmp_path, slippage_bps=0.0)
    paper.observe_price("m1", 0.5)
    await paper.execute(_buy(0.1))

    reloaded = PaperExecutor(tmp_path, initial_balance_sol=50.0)
    assert await reloaded.get_balance() == pytest.approx(0.9)
    assert await reloaded.get_token_balance("m1") == pytest.approx(0.2)


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["{not json", "[1, 2]", '{"balance_sol": "lots"}'])
async def test_unreadable_state_starts_fresh(tmp_path: Path, content: str) -> None:
    (tmp_path / "paper_state.json").write_text(content, encoding="utf-8")

    paper = PaperExecutor(tmp_path, initial_balance_sol=2.0)
    assert await paper.get_balance() == 2.0
    assert await paper.get_all_tokens() == {}
