"""
Typed rows and result envelopes for the OpaY backend.

Every payload coming back from the REST layer or a stored procedure is turned
into one of these dataclasses through its ``from_row`` constructor. A payload
missing a required field raises ``BackendResponseError`` naming the table or
function it came from, so malformed data never travels further than the
service that fetched it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from utils.decimal_precision import MonetaryDecimal, to_json_number
from utils.exception_handler import BackendResponseError, RpcRejectedError

logger = logging.getLogger(__name__)


# ===== ENUMS =====

class FeeType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"

    @classmethod
    def parse(cls, value: Any) -> "FeeType":
        if isinstance(value, FeeType):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.PERCENTAGE


class RequestStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    FLEXY_MOBILIS = "flexy_mobilis"
    BARIDIMOB = "baridimob"
    CCP = "ccp"
    CASH = "cash"


class WithdrawalMethod(Enum):
    OPAY = "opay"
    BARID_BANK = "barid_bank"
    CCP = "ccp"
    ALBARAKA = "albaraka"
    BADR = "badr"
    CASH = "cash"


class AppRole(Enum):
    ADMIN = "admin"
    USER = "user"


# ===== HELPERS =====

def _require(row: Dict[str, Any], key: str, source: str) -> Any:
    if not isinstance(row, dict):
        raise BackendResponseError(source, f"expected an object, got {type(row).__name__}")
    value = row.get(key)
    if value is None:
        raise BackendResponseError(source, f"missing required field '{key}'")
    return value


def _decimal(row: Dict[str, Any], key: str, default: str = "0") -> Decimal:
    value = row.get(key)
    if value is None:
        return Decimal(default)
    return MonetaryDecimal.to_decimal(value, key)


def _optional_decimal(row: Dict[str, Any], key: str) -> Optional[Decimal]:
    return MonetaryDecimal.to_optional_decimal(row.get(key), key)


def _timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable timestamp {value!r}")
        return None


def _status(value: Any) -> RequestStatus:
    try:
        return RequestStatus(str(value))
    except ValueError:
        return RequestStatus.PENDING


# ===== RPC ENVELOPE =====

@dataclass
class RpcResult:
    """The {success, error, message, ...} JSON most stored procedures return"""
    function: str
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, function: str, payload: Any) -> "RpcResult":
        # void procedures answer with null
        if payload is None:
            return cls(function=function, success=True)
        if isinstance(payload, list):
            payload = payload[0] if payload else {}
        if not isinstance(payload, dict):
            return cls(function=function, success=True, data={"value": payload})
        success = payload.get("success")
        if success is None:
            success = "error" not in payload
        return cls(
            function=function,
            success=bool(success),
            error=payload.get("error"),
            message=payload.get("message"),
            data=payload,
        )

    def raise_for_error(self) -> "RpcResult":
        if not self.success:
            raise RpcRejectedError(self.function, self.error or "unknown error")
        return self

    def get_decimal(self, key: str) -> Optional[Decimal]:
        return MonetaryDecimal.to_optional_decimal(self.data.get(key), key)


# ===== ROWS =====

@dataclass
class UserSession:
    """Backend identity linked to a Telegram user"""
    user_id: str
    access_token: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class UserBalance:
    user_id: str
    balance: Decimal
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "UserBalance":
        return cls(
            user_id=str(_require(row, "user_id", "user_balances")),
            balance=_decimal(row, "balance"),
            updated_at=_timestamp(row.get("updated_at")),
        )


@dataclass
class Deposit:
    id: str
    user_id: str
    amount: Decimal
    payment_method: str
    status: RequestStatus
    transaction_id: Optional[str] = None
    receipt_image: Optional[str] = None
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Deposit":
        return cls(
            id=str(_require(row, "id", "deposits")),
            user_id=str(_require(row, "user_id", "deposits")),
            amount=MonetaryDecimal.to_decimal(_require(row, "amount", "deposits")),
            payment_method=str(row.get("payment_method") or ""),
            status=_status(row.get("status")),
            transaction_id=row.get("transaction_id"),
            receipt_image=row.get("receipt_image"),
            admin_notes=row.get("admin_notes"),
            created_at=_timestamp(row.get("created_at")),
        )

    @property
    def flexy_details(self) -> Optional[Dict[str, str]]:
        """Sender phone and base/unique amounts packed into transaction_id"""
        if self.payment_method != PaymentMethod.FLEXY_MOBILIS.value or not self.transaction_id:
            return None
        parts = self.transaction_id.split("|")
        if len(parts) != 3:
            return None
        return {"sender_phone": parts[0], "base_amount": parts[1], "unique_amount": parts[2]}


@dataclass
class Withdrawal:
    id: str
    user_id: str
    amount: Decimal
    withdrawal_method: str
    status: RequestStatus
    account_number: Optional[str] = None
    account_holder_name: Optional[str] = None
    cash_location: Optional[str] = None
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Withdrawal":
        return cls(
            id=str(_require(row, "id", "withdrawals")),
            user_id=str(_require(row, "user_id", "withdrawals")),
            amount=MonetaryDecimal.to_decimal(_require(row, "amount", "withdrawals")),
            withdrawal_method=str(_require(row, "withdrawal_method", "withdrawals")),
            status=_status(row.get("status")),
            account_number=row.get("account_number"),
            account_holder_name=row.get("account_holder_name"),
            cash_location=row.get("cash_location"),
            notes=row.get("notes"),
            admin_notes=row.get("admin_notes"),
            created_at=_timestamp(row.get("created_at")),
        )


@dataclass
class Transfer:
    id: str
    sender_id: str
    recipient_id: str
    amount: Decimal
    note: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Transfer":
        return cls(
            id=str(_require(row, "id", "transfers")),
            sender_id=str(_require(row, "sender_id", "transfers")),
            recipient_id=str(_require(row, "recipient_id", "transfers")),
            amount=MonetaryDecimal.to_decimal(_require(row, "amount", "transfers")),
            note=row.get("note"),
            status=row.get("status"),
            created_at=_timestamp(row.get("created_at")),
        )

    def direction_for(self, user_id: str) -> str:
        return "sent" if self.sender_id == user_id else "received"


@dataclass
class FeeConfig:
    """platform_settings deposit_fees / withdrawal_fees / transfer_fees"""
    enabled: bool = False
    percentage: Decimal = Decimal("0")
    fixed_amount: Decimal = Decimal("0")
    min_fee: Decimal = Decimal("0")
    max_fee: Optional[Decimal] = None

    @classmethod
    def from_row(cls, row: Optional[Dict[str, Any]]) -> "FeeConfig":
        if not isinstance(row, dict):
            return cls()
        return cls(
            enabled=bool(row.get("enabled", False)),
            percentage=_decimal(row, "percentage"),
            fixed_amount=_decimal(row, "fixed_amount"),
            min_fee=_decimal(row, "min_fee"),
            max_fee=_optional_decimal(row, "max_fee"),
        )


@dataclass
class PhoneOperator:
    id: str
    name: str
    slug: str = ""
    is_active: bool = True
    fee_type: str = "percentage"
    fee_value: Decimal = Decimal("0")
    fee_min: Decimal = Decimal("0")
    fee_max: Optional[Decimal] = None
    min_amount: Decimal = Decimal("0")
    max_amount: Optional[Decimal] = None
    display_order: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PhoneOperator":
        return cls(
            id=str(_require(row, "id", "phone_operators")),
            name=str(_require(row, "name", "phone_operators")),
            slug=str(row.get("slug") or ""),
            is_active=bool(row.get("is_active", True)),
            fee_type=str(row.get("fee_type") or "percentage"),
            fee_value=_decimal(row, "fee_value"),
            fee_min=_decimal(row, "fee_min"),
            fee_max=_optional_decimal(row, "fee_max"),
            min_amount=_decimal(row, "min_amount"),
            max_amount=_optional_decimal(row, "max_amount"),
            display_order=int(row.get("display_order") or 0),
        )


@dataclass
class PhoneTopupSettings:
    enabled: bool = True
    use_operator_fees: bool = True
    global_fee_type: str = "percentage"
    global_fee_value: Decimal = Decimal("0")
    global_fee_min: Decimal = Decimal("0")
    global_fee_max: Optional[Decimal] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PhoneTopupSettings":
        if not isinstance(row, dict):
            raise BackendResponseError("phone_topup_settings", "expected an object")
        return cls(
            enabled=bool(row.get("enabled", True)),
            use_operator_fees=bool(row.get("use_operator_fees", True)),
            global_fee_type=str(row.get("global_fee_type") or "percentage"),
            global_fee_value=_decimal(row, "global_fee_value"),
            global_fee_min=_decimal(row, "global_fee_min"),
            global_fee_max=_optional_decimal(row, "global_fee_max"),
        )


@dataclass
class FlexyDepositSettings:
    enabled: bool = True
    receiving_number: str = ""
    fee_percentage: Decimal = Decimal("5")
    min_amount: Decimal = Decimal("100")
    max_amount: Decimal = Decimal("5000")
    daily_limit: int = 3

    @classmethod
    def from_row(
        cls, row: Optional[Dict[str, Any]], defaults: Optional["FlexyDepositSettings"] = None
    ) -> "FlexyDepositSettings":
        """Stored values win over defaults key by key"""
        base = defaults or cls()
        if not isinstance(row, dict):
            return base
        return cls(
            enabled=bool(row.get("enabled", base.enabled)),
            receiving_number=str(row.get("receiving_number") or base.receiving_number),
            fee_percentage=_decimal(row, "fee_percentage", str(base.fee_percentage)),
            min_amount=_decimal(row, "min_amount", str(base.min_amount)),
            max_amount=_decimal(row, "max_amount", str(base.max_amount)),
            daily_limit=int(row.get("daily_limit") or base.daily_limit),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "receiving_number": self.receiving_number,
            "fee_percentage": to_json_number(self.fee_percentage),
            "min_amount": to_json_number(self.min_amount),
            "max_amount": to_json_number(self.max_amount),
            "daily_limit": self.daily_limit,
        }


@dataclass
class DigitalCardFeeSettings:
    fee_type: str = "percentage"
    fee_value: Decimal = Decimal("0")
    min_fee: Decimal = Decimal("0")
    max_fee: Optional[Decimal] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "DigitalCardFeeSettings":
        if not isinstance(row, dict):
            raise BackendResponseError("digital_card_fee_settings", "expected an object")
        return cls(
            fee_type=str(row.get("fee_type") or "percentage"),
            fee_value=_decimal(row, "fee_value"),
            min_fee=_decimal(row, "min_fee"),
            max_fee=_optional_decimal(row, "max_fee"),
        )


@dataclass
class ReceiptFile:
    """An uploaded image (deposit receipt or ID document)"""
    filename: str
    content: bytes
    content_type: str = "image/jpeg"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        if "." in self.filename:
            return self.filename.rsplit(".", 1)[-1].lower()
        subtype = self.content_type.split("/")[-1].lower()
        return "jpg" if subtype == "jpeg" else subtype


@dataclass
class ScannedUser:
    """Recipient decoded from an OpaY user QR code"""
    user_id: str
    full_name: str
    phone: str


@dataclass
class PendingQueue:
    """One admin approval queue snapshot"""
    name: str
    rows: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.rows)
