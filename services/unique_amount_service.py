"""
Unique Amount Service - collision-free Flexy deposit amounts

Flexy (Mobilis airtime) transfers carry no reference, so each pending deposit
is matched by amount. The user is asked to send base + a small random offset,
and the offset is only offered once no other pending Flexy deposit created
today uses the same amount.
"""

import logging
import random
from datetime import datetime, timezone
from zoneinfo import ZoneInfo
from decimal import Decimal
from typing import Callable, Optional, Set

from config import Config
from models import PaymentMethod, RequestStatus
from services.backend_client import BackendClient, eq, gte
from utils import messages
from utils.decimal_precision import MonetaryDecimal, Numeric
from utils.exception_handler import BackendError, UniqueAmountUnavailableError

logger = logging.getLogger(__name__)

# (upper bound exclusive, largest offset)
OFFSET_TIERS = (
    (Decimal("300"), 5),
    (Decimal("1000"), 15),
    (Decimal("3000"), 39),
)
TOP_TIER_MAX_OFFSET = 79


def max_offset_for(base_amount: Numeric) -> int:
    base = MonetaryDecimal.to_decimal(base_amount)
    for upper, offset in OFFSET_TIERS:
        if base < upper:
            return offset
    return TOP_TIER_MAX_OFFSET


def generate_unique_amount(base_amount: Numeric, rng: Optional[random.Random] = None) -> Decimal:
    """base + randint(1, max_offset), in whole dinars"""
    rng = rng or random.SystemRandom()
    base = MonetaryDecimal.round_dzd(base_amount)
    return base + rng.randint(1, max_offset_for(base))


def start_of_today(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> datetime:
    """Local midnight of the platform's day, as a UTC instant"""
    now = now or datetime.now(timezone.utc)
    local = now.astimezone(ZoneInfo(tz_name or Config.LOCAL_TIMEZONE))
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)


class UniqueAmountService:
    """Finds a Flexy amount no other pending deposit uses today"""

    def __init__(
        self,
        backend: BackendClient,
        rng: Optional[random.Random] = None,
        max_attempts: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.backend = backend
        self.rng = rng or random.SystemRandom()
        self.max_attempts = max_attempts or Config.UNIQUE_AMOUNT_MAX_ATTEMPTS
        self.clock = clock

    async def is_amount_available(self, amount: Decimal) -> bool:
        count = await self.backend.count(
            "deposits",
            {
                "payment_method": eq(PaymentMethod.FLEXY_MOBILIS.value),
                "status": eq(RequestStatus.PENDING.value),
                "amount": eq(int(amount)),
                "created_at": gte(start_of_today(self.clock())),
            },
        )
        return count == 0

    async def get_available_unique_amount(self, base_amount: Numeric) -> Decimal:
        """
        Try up to max_attempts candidates. Raises UniqueAmountUnavailableError
        when every candidate is taken or availability cannot be confirmed.
        """
        base = MonetaryDecimal.round_dzd(base_amount)
        tried: Set[Decimal] = set()
        candidate_space = max_offset_for(base)

        for attempt in range(1, self.max_attempts + 1):
            if len(tried) >= candidate_space:
                break
            candidate = generate_unique_amount(base, self.rng)
            if candidate in tried:
                continue
            tried.add(candidate)

            try:
                available = await self.is_amount_available(candidate)
            except BackendError as e:
                logger.error(f"❌ Unique amount lookup failed for base {base}: {e}")
                raise UniqueAmountUnavailableError(
                    f"could not verify availability of {candidate}",
                    user_message=messages.UNIQUE_AMOUNT_CHECK_FAILED,
                ) from e

            if available:
                logger.info(f"✅ Unique Flexy amount {candidate} for base {base} (attempt {attempt})")
                return candidate
            logger.debug(f"Flexy amount {candidate} already pending today")

        logger.warning(f"⚠️ No free Flexy amount for base {base} after {len(tried)} candidates")
        raise UniqueAmountUnavailableError(
            f"no free unique amount for base {base}",
            user_message=messages.UNIQUE_AMOUNT_NONE_FREE,
        )
