"""Configuration management for the OpaY wallet bot"""

import os
import logging
from decimal import Decimal
from typing import List, Optional, Set

from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env"))

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"⚠️ Invalid integer for {name}, using default {default}")
        return default


def _env_decimal(name: str, default: str) -> Decimal:
    try:
        return Decimal(os.getenv(name, default))
    except Exception:
        logger.warning(f"⚠️ Invalid decimal for {name}, using default {default}")
        return Decimal(default)


def _env_id_set(name: str) -> Set[int]:
    ids = set()
    for part in os.getenv(name, "").split(","):
        part = part.strip()
        if part.isdigit():
            ids.add(int(part))
    return ids


class Config:
    """Application configuration"""

    # Environment detection: ENVIRONMENT takes priority
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower().strip()
    IS_PRODUCTION = ENVIRONMENT == "production"
    CURRENT_ENVIRONMENT = "production" if IS_PRODUCTION else "development"

    # Bot token: TELEGRAM_BOT_TOKEN > BOT_TOKEN
    BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN") or os.getenv("BOT_TOKEN")

    # Telegram user ids that see the admin console entry points.
    # Authorization itself is always the backend has_role check.
    ADMIN_USER_IDS = _env_id_set("ADMIN_USER_IDS")

    # Managed backend (REST tables, RPC, storage, functions)
    SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
    SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
    SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "")
    BACKEND_TIMEOUT_SECONDS = _env_int("BACKEND_TIMEOUT_SECONDS", 15)

    # Branding
    PLATFORM_NAME = os.getenv("PLATFORM_NAME", "OpaY")
    # Day boundary for daily limits and unique amounts
    LOCAL_TIMEZONE = os.getenv("LOCAL_TIMEZONE", "Africa/Algiers")

    # Flexy (Mobilis airtime) deposit defaults, overridden by
    # platform_settings.flexy_deposit_settings
    FLEXY_ENABLED = _env_bool("FLEXY_ENABLED", True)
    FLEXY_RECEIVING_NUMBER = os.getenv("FLEXY_RECEIVING_NUMBER", "")
    FLEXY_FEE_PERCENTAGE = _env_decimal("FLEXY_FEE_PERCENTAGE", "5")
    FLEXY_MIN_AMOUNT = _env_decimal("FLEXY_MIN_AMOUNT", "100")
    FLEXY_MAX_AMOUNT = _env_decimal("FLEXY_MAX_AMOUNT", "5000")
    FLEXY_DAILY_LIMIT = _env_int("FLEXY_DAILY_LIMIT", 3)

    # Unique amount generation
    UNIQUE_AMOUNT_MAX_ATTEMPTS = _env_int("UNIQUE_AMOUNT_MAX_ATTEMPTS", 10)

    # Uploads
    RECEIPT_MAX_BYTES = _env_int("RECEIPT_MAX_BYTES", 5 * 1024 * 1024)
    RECEIPT_BUCKET = os.getenv("RECEIPT_BUCKET", "deposit-receipts")
    ID_DOCUMENT_BUCKET = os.getenv("ID_DOCUMENT_BUCKET", "identity-documents")

    # Duplicate deposit window
    DUPLICATE_WINDOW_MINUTES = _env_int("DUPLICATE_WINDOW_MINUTES", 5)

    # Betting deposit fee rule: 2% clamped to [10, 500]
    BETTING_FEE_PERCENTAGE = _env_decimal("BETTING_FEE_PERCENTAGE", "2")
    BETTING_MIN_FEE = _env_decimal("BETTING_MIN_FEE", "10")
    BETTING_MAX_FEE = _env_decimal("BETTING_MAX_FEE", "500")

    # Shop
    DEFAULT_DELIVERY_FEE = _env_decimal("DEFAULT_DELIVERY_FEE", "400")
    ALIEXPRESS_DEFAULT_SHIPPING_USD = _env_decimal("ALIEXPRESS_DEFAULT_SHIPPING_USD", "10")
    ALIEXPRESS_DEFAULT_EXCHANGE_RATE = _env_decimal("ALIEXPRESS_DEFAULT_EXCHANGE_RATE", "250")

    # Caching and scenes
    SETTINGS_CACHE_TTL = _env_int("SETTINGS_CACHE_TTL", 300)
    SCENE_TIMEOUT_MINUTES = _env_int("SCENE_TIMEOUT_MINUTES", 30)
    SCENE_HISTORY_LIMIT = _env_int("SCENE_HISTORY_LIMIT", 10)

    # Admin notifications through the telegram-notify function
    NOTIFICATIONS_ENABLED = _env_bool("NOTIFICATIONS_ENABLED", True)

    @staticmethod
    def validate() -> List[str]:
        """Return the names of required settings that are missing"""
        missing = []
        if not Config.BOT_TOKEN:
            missing.append("TELEGRAM_BOT_TOKEN")
        if not Config.SUPABASE_URL:
            missing.append("SUPABASE_URL")
        if not Config.SUPABASE_ANON_KEY:
            missing.append("SUPABASE_ANON_KEY")
        return missing

    @staticmethod
    def log_environment_config() -> None:
        logger.info(f"🌍 Environment: {Config.CURRENT_ENVIRONMENT}")
        logger.info(f"🔗 Backend: {Config.SUPABASE_URL or 'NOT SET'}")
        logger.info(f"👮 Admin ids configured: {len(Config.ADMIN_USER_IDS)}")
        logger.info(
            f"📱 Flexy defaults: {Config.FLEXY_FEE_PERCENTAGE}% fee, "
            f"{Config.FLEXY_MIN_AMOUNT}-{Config.FLEXY_MAX_AMOUNT} DZD, "
            f"{Config.FLEXY_DAILY_LIMIT}/day"
        )

    @staticmethod
    def backend_key(prefer_service: bool = False) -> Optional[str]:
        if prefer_service and Config.SUPABASE_SERVICE_KEY:
            return Config.SUPABASE_SERVICE_KEY
        return Config.SUPABASE_ANON_KEY or None
