"""CLI 入口模块 - Pump Trader 命令行接口。"""

import asyncio
import sys
from importlib import metadata
from pathlib import Path

import click

from pump_trader import __version__
from pump_trader.config import RunMode, Settings, get_settings
from pump_trader.engine import TradingEngine, build_engine
from pump_trader.feed.replay import ReplayClock, replay_events
from pump_trader.feed.websocket import FeedExhaustedError, PumpPortalFeed
from pump_trader.portfolio.ledger import PositionLedger
from pump_trader.utils.logging import get_logger, setup_logging

_RUNTIME_DISTRIBUTIONS = (
    "click",
    "httpx",
    "pydantic",
    "pydantic-settings",
    "structlog",
    "tenacity",
    "websockets",
)


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="显示版本号")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="覆盖 LOG_LEVEL 配置",
)
@click.pass_context
def cli(ctx: click.Context, version: bool, log_level: str | None) -> None:
    """Pump Trader - pump.fun 新币与动量自动交易系统。

    订阅实时行情，经策略管线、风控检查后执行交易并记录持仓。
    """
    if version:
        click.echo(f"pump-trader version {__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    setup_logging(log_level.upper() if log_level else None)


def _require_live_config(settings: Settings) -> None:
    """实盘模式缺少必要配置时退出。"""
    if not settings.is_live_mode:
        return
    missing = settings.validate_for_live()
    if missing:
        get_logger("pump_trader.main").error(
            "missing_required_config",
            missing_keys=missing,
            hint="请在 .env 文件中配置必要的 API 密钥",
        )
        sys.exit(1)


async def _run_live(engine: TradingEngine, feed: PumpPortalFeed) -> int:
    await engine.prime_subscriptions()
    try:
        return await engine.run(feed.events())
    finally:
        await feed.close()


@cli.command()
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="试运行模式，只记录交易提案，不执行交易",
)
def run(dry_run: bool) -> None:
    """连接实时行情并持续交易。

    行情事件 → 策略管线 → 风控检查 → 执行 → 更新持仓。
    使用 Ctrl+C 停止。
    """
    logger = get_logger("pump_trader.main")
    settings = get_settings()
    settings.ensure_directories()
    _require_live_config(settings)

    logger.info("starting_live_feed", mode=settings.mode.value, dry_run=dry_run)

    feed = PumpPortalFeed(settings)
    engine = build_engine(settings, dry_run=dry_run, feed=feed)
    try:
        processed = asyncio.run(_run_live(engine, feed))
        logger.info("feed_finished", processed=processed)
    except KeyboardInterrupt:
        logger.info("run_interrupted", message="User interrupted")
        sys.exit(0)
    except FeedExhaustedError as e:
        logger.error("feed_unavailable", error=str(e))
        sys.exit(1)
    except Exception as e:
        logger.exception("run_failed", error=str(e))
        sys.exit(1)


@cli.command()
@click.argument("events_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="试运行模式，只记录交易提案，不执行交易",
)
@click.option(
    "--delay",
    type=float,
    default=0.0,
    show_default=True,
    help="事件之间的间隔（秒）",
)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="回放状态目录，默认 DATA_DIR/replay",
)
def replay(events_file: Path, dry_run: bool, delay: float, data_dir: Path | None) -> None:
    """用 JSONL 事件文件回放行情（始终为纸交易模式）。

    回放使用独立的状态目录，不会改动实盘持仓快照；时间按事件时间戳推进。
    """
    logger = get_logger("pump_trader.main")
    settings = get_settings()
    replay_dir = data_dir or settings.data_dir / "replay"
    if replay_dir.resolve() == settings.data_dir.resolve():
        raise click.BadParameter("回放目录不能与 DATA_DIR 相同", param_hint="--data-dir")
    # 回放不允许触发实盘交易
    settings = settings.model_copy(update={"mode": RunMode.PAPER, "data_dir": replay_dir})
    settings.ensure_directories()

    engine = build_engine(settings, dry_run=dry_run, clock=ReplayClock())
    try:
        processed = asyncio.run(engine.run(replay_events(events_file, delay_seconds=delay)))
    except KeyboardInterrupt:
        logger.info("replay_interrupted", message="User interrupted")
        sys.exit(0)

    portfolio = engine.ledger.get_portfolio()
    click.echo(f"Processed {processed} events from {events_file}")
    click.echo(f"State dir: {replay_dir}")
    click.echo(f"Open positions: {len(engine.ledger.get_open_positions())}")
    click.echo(f"Realized PnL: {portfolio.realized_pnl:.6f} SOL")
    click.echo(f"Unrealized PnL: {portfolio.unrealized_pnl:.6f} SOL")
    logger.info("replay_completed", processed=processed, dry_run=dry_run)


@cli.command()
def status() -> None:
    """显示系统状态、配置摘要和持仓概况。"""
    settings = get_settings()

    click.echo("=" * 50)
    click.echo("Pump Trader - Status")
    click.echo("=" * 50)
    click.echo()

    # 运行模式
    mode_marker = "[PAPER]" if settings.is_paper_mode else "[LIVE]"
    mode_text = "Paper Trading" if settings.is_paper_mode else "Live Trading"
    click.echo(f"{mode_marker} Mode: {mode_text}")
    click.echo()

    # API 配置状态
    click.echo("[API Configuration]")
    api_status = "[OK] Configured" if settings.pumpportal_api_key else "[--] Not configured"
    wallet_status = "[OK] Configured" if settings.wallet_public_key else "[--] Not configured"
    click.echo(f"   PumpPortal API: {api_status}")
    click.echo(f"   Wallet public key: {wallet_status}")
    click.echo(f"   RPC endpoint: {settings.rpc_endpoint}")
    click.echo()

    # 风控参数
    click.echo("[Risk Parameters]")
    click.echo(
        f"   Trade size: {settings.min_trade_amount_sol} - {settings.max_trade_amount_sol} SOL"
    )
    click.echo(f"   Daily volume cap: {settings.max_daily_trading_volume} SOL")
    click.echo(f"   Max position size: {settings.max_position_size_percentage}%")
    click.echo(f"   Stop loss / take profit: {settings.stop_loss_percentage}% / {settings.take_profit_percentage}%")
    click.echo()

    # 持仓概况
    ledger = PositionLedger(settings.data_dir)
    portfolio = ledger.get_portfolio()
    click.echo("[Portfolio]")
    click.echo(f"   Open positions: {len(ledger.get_open_positions())}")
    for position in ledger.get_open_positions():
        click.echo(
            f"   - {position.token_symbol} ({position.mint[:8]}): "
            f"{position.amount:.4f} @ {position.entry_price:.10f}"
        )
    click.echo(f"   Total invested: {portfolio.total_invested_sol:.6f} SOL")
    click.echo(f"   Realized PnL: {portfolio.realized_pnl:.6f} SOL")
    click.echo(f"   Unrealized PnL: {portfolio.unrealized_pnl:.6f} SOL")
    click.echo()

    click.echo("[Storage]")
    click.echo(f"   Ledger snapshot: {ledger.state_file}")
    click.echo(f"   Journal dir: {settings.journal_dir}")
    click.echo()

    # 验证状态
    if settings.is_live_mode:
        missing = settings.validate_for_live()
        if missing:
            click.echo("[ERROR] Live mode configuration incomplete, missing:")
            for key in missing:
                click.echo(f"   - {key}")
        else:
            click.echo("[OK] Live mode configuration complete")
    else:
        click.echo("[INFO] Paper mode does not require API credentials")

    click.echo()
    click.echo("=" * 50)


@cli.command()
def check() -> None:
    """检查依赖版本、数据目录和实盘配置，有问题时以状态码 1 退出。"""
    logger = get_logger("pump_trader.main")
    settings = get_settings()
    problems: list[str] = []

    click.echo("[Dependencies]")
    for dist in _RUNTIME_DISTRIBUTIONS:
        try:
            click.echo(f"   [OK] {dist} {metadata.version(dist)}")
        except metadata.PackageNotFoundError:
            click.echo(f"   [MISSING] {dist}")
            problems.append(f"missing package {dist}")
    click.echo()

    click.echo("[Storage]")
    try:
        settings.ensure_directories()
        probe = settings.data_dir / ".write_check"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink()
        click.echo(f"   [OK] {settings.data_dir} is writable")
    except OSError as e:
        click.echo(f"   [ERROR] {settings.data_dir}: {e}")
        problems.append("data_dir not writable")
    env_note = "found" if Path(".env").exists() else "not found, using environment and defaults"
    click.echo(f"   .env: {env_note}")
    click.echo()

    click.echo("[Mode]")
    if settings.is_live_mode:
        missing = settings.validate_for_live()
        for key in missing:
            click.echo(f"   [ERROR] {key} is required in live mode")
            problems.append(f"missing {key}")
        if not missing:
            click.echo("   [OK] Live mode configuration complete")
    else:
        click.echo("   [INFO] Paper mode, no credentials required")
    click.echo()

    logger.info("dependency_check_completed", problems=problems)
    if problems:
        click.echo(f"[ERROR] {len(problems)} problem(s) found")
        sys.exit(1)
    click.echo("[OK] All checks passed")


# 支持 python -m pump_trader.main 调用
if __name__ == "__main__":
    cli()
