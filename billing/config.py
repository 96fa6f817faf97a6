import os
import logging
from pathlib import Path
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

# Загружаем переменные из .env файла (для локального запуска)
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config(BaseModel):
    """Конфигурация воркера биллинга с валидацией"""

    model_config = {"frozen": True}

    database_url: str = Field(..., description="PostgreSQL connection URL")
    service_domain: str = Field(..., description="Domain used in invoice links")

    # Chia wallet RPC
    chia_rpc_host: str = Field(default="localhost", description="Chia wallet RPC host")
    chia_rpc_wallet_port: int = Field(default=9256, description="Chia wallet RPC port")
    chia_root: Path = Field(default=Path("~/.chia/mainnet"), description="CHIA_ROOT with config/ssl")
    chia_wallet_id: int = Field(default=1, description="Wallet used for receiving payments")

    provisioning_url: str = Field(..., description="Base URL of the provisioning worker")
    products_config_path: Path = Field(
        default=Path("products.config.json"),
        description="Product catalog (key -> {cmd, cost})"
    )

    # SMTP
    smtp_host: str = Field(default="localhost")
    smtp_port: int = Field(default=587)
    smtp_user: str = Field(default="")
    smtp_password: str = Field(default="")
    smtp_use_tls: bool = Field(default=True)
    email_from: str = Field(default="noreply@localhost")

    auto_terminate_after_grace: bool = Field(
        default=False,
        description="Terminate subscriptions automatically once the grace period is over"
    )

    http_host: str = Field(default="0.0.0.0")
    http_port: int = Field(default=8080)

    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator('chia_root', mode='after')
    @classmethod
    def expand_chia_root(cls, v: Path) -> Path:
        """Раскрывает ~ в пути CHIA_ROOT"""
        return v.expanduser()

    @field_validator('log_level')
    @classmethod
    def check_log_level(cls, v: str) -> str:
        if not isinstance(getattr(logging, v.upper(), None), int):
            raise ValueError(f"Неизвестный уровень логирования: {v}")
        return v.upper()

    @property
    def chia_wallet_url(self) -> str:
        return f"https://{self.chia_rpc_host}:{self.chia_rpc_wallet_port}"

    @property
    def chia_cert_file(self) -> Path:
        return self.chia_root / "config" / "ssl" / "wallet" / "private_wallet.crt"

    @property
    def chia_key_file(self) -> Path:
        return self.chia_root / "config" / "ssl" / "wallet" / "private_wallet.key"

    def invoice_url(self, guid: str) -> str:
        """Ссылка на страницу оплаты счёта"""
        return f"https://app.{self.service_domain}/invoices/{guid}"

    @classmethod
    def from_env(cls) -> "Config":
        """Создает конфиг из переменных окружения с валидацией"""
        db_url = os.getenv("DATABASE_URL")
        service_domain = os.getenv("SERVICE_DOMAIN")
        provisioning_url = os.getenv("PROVISIONING_URL")

        if not db_url:
            raise ValueError("DATABASE_URL не установлен")
        if not service_domain:
            raise ValueError("SERVICE_DOMAIN не установлен")
        if not provisioning_url:
            raise ValueError("PROVISIONING_URL не установлен")

        return cls(
            database_url=db_url,
            service_domain=service_domain,
            chia_rpc_host=os.getenv("CHIA_RPC_HOST", "localhost"),
            chia_rpc_wallet_port=int(os.getenv("CHIA_RPC_WALLET_PORT", "9256")),
            chia_root=Path(os.getenv("CHIA_ROOT", "~/.chia/mainnet")),
            chia_wallet_id=int(os.getenv("CHIA_WALLET_ID", "1")),
            provisioning_url=provisioning_url.rstrip("/"),
            products_config_path=Path(os.getenv("PRODUCTS_CONFIG_PATH", "products.config.json")),
            smtp_host=os.getenv("SMTP_HOST", "localhost"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            smtp_use_tls=_env_bool("SMTP_USE_TLS", "true"),
            email_from=os.getenv("EMAIL_FROM", "noreply@localhost"),
            auto_terminate_after_grace=_env_bool("AUTO_TERMINATE_AFTER_GRACE", "false"),
            http_host=os.getenv("HTTP_HOST", "0.0.0.0"),
            http_port=int(os.getenv("HTTP_PORT", "8080")),
            log_level=os.getenv("LOG_LEVEL", "INFO")
        )


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Настраивает логирование для приложения"""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    return logging.getLogger(__name__)
