"""配置加载模块 - 从环境变量和 .env 文件加载配置。"""

from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RunMode(str, Enum):
    """运行模式枚举。"""

    PAPER = "paper"  # 纸交易
    LIVE = "live"  # 实盘


class LogFormat(str, Enum):
    """日志格式枚举。"""

    JSON = "json"
    CONSOLE = "console"


class Settings(BaseSettings):
    """系统配置设置。

    从环境变量和 .env 文件加载配置。
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== 运行模式 ====================
    mode: RunMode = Field(default=RunMode.PAPER, description="运行模式: paper 或 live")
    paper_initial_balance_sol: float = Field(
        default=1.0,
        gt=0.0,
        description="纸交易初始 SOL 余额",
    )

    # ==================== PumpPortal API ====================
    pumpportal_api_key: str = Field(default="", description="PumpPortal API Key")
    pumpportal_trade_url: str = Field(
        default="https://pumpportal.fun/api/trade",
        description="PumpPortal 交易接口地址",
    )
    pumpportal_ws_url: str = Field(
        default="wss://pumpportal.fun/api/data",
        description="PumpPortal WebSocket 数据流地址",
    )
    http_timeout: int = Field(default=15, ge=1, le=120, description="HTTP 调用超时（秒）")

    # ==================== Solana 钱包 ====================
    rpc_endpoint: str = Field(
        default="https://api.mainnet-beta.solana.com",
        description="Solana RPC 节点地址",
    )
    wallet_public_key: str = Field(default="", description="钱包公钥")

    # ==================== WebSocket 重连 ====================
    ws_reconnect_interval: float = Field(
        default=5.0,
        ge=0.0,
        le=300.0,
        description="重连间隔（秒）",
    )
    ws_max_reconnect_attempts: int = Field(
        default=10,
        ge=0,
        le=1000,
        description="最大重连次数",
    )

    # ==================== 交易参数 ====================
    default_slippage: float = Field(
        default=1.0,
        ge=0.0,
        le=100.0,
        description="默认滑点（百分比）",
    )
    default_priority_fee: float = Field(
        default=0.00001,
        ge=0.0,
        description="默认优先费（SOL）",
    )
    default_pool: Literal["pump", "raydium", "auto"] = Field(
        default="pump",
        description="默认交易池",
    )
    max_trade_amount_sol: float = Field(default=0.5, gt=0.0, description="单笔最大交易额（SOL）")
    min_trade_amount_sol: float = Field(default=0.01, ge=0.0, description="单笔最小交易额（SOL）")
    stop_loss_percentage: float = Field(
        default=10.0,
        gt=0.0,
        lt=100.0,
        description="止损百分比",
    )
    take_profit_percentage: float = Field(
        default=20.0,
        gt=0.0,
        description="止盈百分比",
    )

    # ==================== 风控参数 ====================
    max_daily_trading_volume: float = Field(
        default=5.0,
        ge=0.0,
        description="每日最大买入量（SOL，UTC 零点重置）",
    )
    max_position_size_percentage: float = Field(
        default=5.0,
        gt=0.0,
        le=100.0,
        description="单仓位上限（组合价值百分比）",
    )
    fee_buffer_sol: float = Field(
        default=0.01,
        ge=0.0,
        description="为手续费预留的 SOL",
    )

    # ==================== 日志配置 ====================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="日志级别",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="日志输出格式",
    )

    # ==================== 数据存储 ====================
    data_dir: Path = Field(
        default=Path("data"),
        description="组合快照与交易日志存储目录",
    )

    @field_validator("data_dir", mode="before")
    @classmethod
    def parse_data_dir(cls, v: str | Path) -> Path:
        """将字符串转换为 Path 对象。"""
        return Path(v) if isinstance(v, str) else v

    @property
    def journal_dir(self) -> Path:
        """交易日志目录。"""
        return self.data_dir / "journal"

    def ensure_directories(self) -> None:
        """确保必要的目录存在。"""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.journal_dir.mkdir(parents=True, exist_ok=True)

    @property
    def is_paper_mode(self) -> bool:
        """是否为纸交易模式。"""
        return self.mode == RunMode.PAPER

    @property
    def is_live_mode(self) -> bool:
        """是否为实盘模式。"""
        return self.mode == RunMode.LIVE

    def validate_for_live(self) -> list[str]:
        """验证实盘模式的必要配置，返回缺失项列表。"""
        missing = []
        if not self.pumpportal_api_key:
            missing.append("PUMPPORTAL_API_KEY")
        if not self.wallet_public_key:
            missing.append("WALLET_PUBLIC_KEY")
        return missing


# 全局配置实例（延迟初始化）
_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局配置实例。"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """重新加载配置。"""
    global _settings
    _settings = Settings()
    return _settings
