"""
Exception Handler Module
Provides the wallet's exception hierarchy and the handler decorator that turns
them into user replies
"""

import logging
import functools
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class OpayError(Exception):
    """Base error for every failure the bot reports back to the user"""

    def __init__(self, message: str, user_message: Optional[str] = None):
        self.message = message
        self.user_message = user_message or message
        super().__init__(message)


class ValidationError(OpayError):
    """Client-side check failed before any round trip"""


class FeePolicyError(ValidationError):
    """Fee policy cannot keep net amounts non-negative"""


class AuthorizationError(OpayError):
    """Caller lacks the required role"""


class BackendError(OpayError):
    """Transport or HTTP failure talking to the backend"""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        user_message: Optional[str] = None,
    ):
        self.status = status
        self.code = code
        super().__init__(message, user_message)


class BackendResponseError(BackendError):
    """Backend answered, but the payload did not match the expected row shape"""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class RpcRejectedError(BackendError):
    """Stored procedure returned {success: false, error: ...}"""

    def __init__(self, function: str, error: str):
        self.function = function
        super().__init__(f"{function} rejected: {error}", user_message=error)


class SceneNotFoundError(OpayError):
    """No scene definition or active scene for the request"""


class SceneValidationError(OpayError):
    """Wizard transition refused; the scene stays on its current step"""

    def __init__(self, message: str, step_id: Optional[str] = None, user_message: Optional[str] = None):
        self.step_id = step_id
        super().__init__(message, user_message)


class UniqueAmountUnavailableError(OpayError):
    """No collision-free Flexy amount could be confirmed"""


class CameraUnavailableError(OpayError):
    """Media stream could not be acquired"""


def safe_telegram_handler(func: Callable) -> Callable:
    """
    Decorator to safely handle telegram handler functions
    Domain errors become a reply with their user message; anything else is
    logged without crashing the bot
    """

    @functools.wraps(func)
    async def wrapper(update, context, *args, **kwargs) -> Any:
        try:
            return await func(update, context, *args, **kwargs)
        except OpayError as e:
            logger.warning(f"⚠️ {func.__name__}: {type(e).__name__}: {e.message}")
            await _reply_error(update, e.user_message)
            return None
        except Exception as e:
            logger.error(f"Error in telegram handler {func.__name__}: {e}")
            logger.error(f"Exception details: {type(e).__name__}: {str(e)}")
            from utils.messages import GENERIC_ERROR
            await _reply_error(update, GENERIC_ERROR)
            return None

    return wrapper


async def _reply_error(update, text: str) -> None:
    message = getattr(update, "effective_message", None)
    if message is None:
        return
    try:
        await message.reply_text(f"❌ {text}")
    except Exception as reply_error:
        logger.debug(f"Error reply failed (non-critical): {reply_error}")
