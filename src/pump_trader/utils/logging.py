"""structlog 日志配置与交易领域的日志辅助函数。

日志写入 stderr，stdout 留给 CLI 的报告输出。
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from pump_trader.config import LogFormat, get_settings

# 第三方库的连接与请求日志过于频繁
_NOISY_LOGGERS = ("websockets", "httpx", "httpcore")


def setup_logging(level: str | None = None) -> None:
    """按配置初始化 structlog；``level`` 覆盖配置中的日志级别。"""
    settings = get_settings()
    log_level = getattr(logging, level or settings.log_level)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.log_format == LogFormat.JSON:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """获取命名的结构化日志记录器，例如 ``get_logger("pump_trader.engine")``。"""
    return structlog.get_logger(name)


# 领域日志辅助函数
def log_strategy_signal(
    logger: structlog.stdlib.BoundLogger,
    *,
    strategy: str,
    action: str,
    mint: str,
    reason: str,
    **kwargs: Any,
) -> None:
    """记录策略触发信号。"""
    logger.info(
        "strategy_signal",
        strategy=strategy,
        action=action,
        mint=mint,
        reason=reason,
        **kwargs,
    )


def log_trade_execution(
    logger: structlog.stdlib.BoundLogger,
    *,
    action: str,
    mint: str,
    amount: float | str,
    price: float | None = None,
    success: bool,
    signature: str | None = None,
    **kwargs: Any,
) -> None:
    """记录交易执行结果。"""
    level = "info" if success else "warning"
    getattr(logger, level)(
        "trade_execution",
        action=action,
        mint=mint,
        amount=amount,
        price=price,
        status="success" if success else "failed",
        signature=signature,
        **kwargs,
    )


def log_risk_rejection(
    logger: structlog.stdlib.BoundLogger,
    *,
    strategy: str,
    mint: str,
    reason: str | None,
    **kwargs: Any,
) -> None:
    """记录风控拒绝。"""
    logger.warning(
        "risk_rejected",
        strategy=strategy,
        mint=mint,
        reason=reason,
        **kwargs,
    )


def log_portfolio(
    logger: structlog.stdlib.BoundLogger,
    *,
    total_value: float,
    realized_pnl: float,
    unrealized_pnl: float,
    **kwargs: Any,
) -> None:
    """记录组合概况。"""
    logger.info(
        "portfolio_status",
        total_value_sol=round(total_value, 9),
        realized_pnl_sol=round(realized_pnl, 9),
        unrealized_pnl_sol=round(unrealized_pnl, 9),
        **kwargs,
    )
