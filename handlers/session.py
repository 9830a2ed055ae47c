"""
Linked-account session helpers shared by every handler

A Telegram user links their wallet account by opening the bot through the
app's deep link (/start <access_token>). The session lives in user_data;
services are built per request so backend calls run as that user.
"""

import logging
from typing import Any, Dict, Optional

from telegram.ext import ContextTypes

from models import UserSession
from services.admin_service import AdminService
from services.backend_client import BackendClient, eq, get_backend_client
from services.diaspora_service import DiasporaService
from services.flexy_deposit_service import FlexyDepositService
from services.merchant_service import MerchantService
from services.notification_service import NotificationService
from services.qr_scanner import photo_session_factory
from services.shop_service import ShopService
from services.topup_service import TopupService
from services.verification_service import VerificationService
from services.wallet_service import WalletService
from utils import messages
from utils.exception_handler import BackendError, ValidationError

logger = logging.getLogger(__name__)

SESSION_KEY = "session"
QR_DECODER_FACTORY_KEY = "qr_decoder_factory"


def get_session(context: ContextTypes.DEFAULT_TYPE) -> Optional[UserSession]:
    return context.user_data.get(SESSION_KEY)


def require_session(context: ContextTypes.DEFAULT_TYPE) -> UserSession:
    session = get_session(context)
    if session is None:
        raise ValidationError("no linked account", messages.LOGIN_REQUIRED)
    return session


async def link_session(context: ContextTypes.DEFAULT_TYPE, access_token: str) -> UserSession:
    """Resolve the token to a backend user and remember it for this chat"""
    backend = get_backend_client().with_token(access_token)
    try:
        user = await backend.get_user()
    except BackendError as e:
        logger.warning(f"⚠️ Session link failed: {e}")
        raise ValidationError(f"session link failed: {e}", messages.SESSION_LINK_FAILED) from e

    profile = await backend.select_one(
        "profiles", {"user_id": eq(user["id"])}, columns="full_name,phone"
    ) or {}
    session = UserSession(
        user_id=user["id"],
        access_token=access_token,
        email=user.get("email"),
        full_name=profile.get("full_name"),
        phone=profile.get("phone"),
    )
    context.user_data[SESSION_KEY] = session
    logger.info(f"🔗 Linked backend user {session.user_id}")
    return session


def user_backend(context: ContextTypes.DEFAULT_TYPE) -> BackendClient:
    return get_backend_client().with_token(require_session(context).access_token)


def build_services(context: ContextTypes.DEFAULT_TYPE) -> Dict[str, Any]:
    """Feature services bound to the linked user's token"""
    backend = user_backend(context)
    notifications = NotificationService(backend)
    decoder_factory = context.application.bot_data.get(QR_DECODER_FACTORY_KEY)
    return {
        "backend": backend,
        "wallet": WalletService(backend, notifications=notifications),
        "flexy": FlexyDepositService(backend, notifications=notifications),
        "topup": TopupService(backend),
        "shop": ShopService(backend),
        "merchant": MerchantService(backend, notifications=notifications),
        "diaspora": DiasporaService(backend, notifications=notifications),
        "verification": VerificationService(backend, notifications=notifications),
        "admin": AdminService(backend),
        "camera_factory": photo_session_factory(decoder_factory),
    }
