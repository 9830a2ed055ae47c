"""
Admin Telegram notifications through the backend telegram-notify function.
Notifications never block or fail a user operation.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from config import Config
from services.backend_client import BackendClient
from utils.decimal_precision import to_json_number

logger = logging.getLogger(__name__)

NOTIFY_FUNCTION = "telegram-notify"


class NotificationService:
    def __init__(self, backend: BackendClient):
        self.backend = backend
        self._pending: set = set()

    async def send(self, event_type: str, record: Dict[str, Any]) -> bool:
        """Invoke telegram-notify; returns False instead of raising"""
        if not Config.NOTIFICATIONS_ENABLED:
            return False
        try:
            await self.backend.invoke(
                NOTIFY_FUNCTION, {"type": event_type, "record": _jsonable(record)}
            )
            logger.info(f"📣 Admin notification sent: {event_type}")
            return True
        except Exception as e:
            logger.warning(f"⚠️ Telegram notification '{event_type}' failed: {e}")
            return False

    def fire(self, event_type: str, record: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Schedule send() without awaiting it"""
        try:
            task = asyncio.get_running_loop().create_task(self.send(event_type, record))
        except RuntimeError:
            logger.debug(f"No running loop, notification '{event_type}' dropped")
            return None
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task


def _jsonable(record: Dict[str, Any]) -> Dict[str, Any]:
    result = {}
    for key, value in record.items():
        if isinstance(value, Decimal):
            result[key] = to_json_number(value)
        elif hasattr(value, "isoformat"):
            result[key] = value.isoformat()
        else:
            result[key] = value
    return result
