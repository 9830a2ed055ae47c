"""User-facing texts (Arabic, as shown in the wallet app)"""

from decimal import Decimal
from typing import Any, Dict, Optional

from utils.decimal_precision import MonetaryDecimal

# ==================== GENERIC ====================

GENERIC_ERROR = "حدث خطأ غير متوقع"
LOGIN_REQUIRED = "يجب تسجيل الدخول أولاً"
NOT_AUTHORIZED = "غير مصرح"
CANCELLED = "تم إلغاء العملية"
NOTHING_TO_CANCEL = "لا توجد عملية جارية"
SESSION_LINKED = "✅ تم ربط حسابك بنجاح"
SESSION_LINK_FAILED = "تعذر ربط الحساب، يرجى فتح الرابط من التطبيق مرة أخرى"
STEP_INCOMPLETE = "يرجى إكمال الخطوات السابقة أولاً"
CANNOT_GO_BACK = "لا يمكن الرجوع من هذه الخطوة"
ALREADY_PROCESSING = "طلبك قيد المعالجة، يرجى الانتظار"
SESSION_EXPIRED = "انتهت صلاحية العملية، يرجى البدء من جديد"

# ==================== AMOUNTS ====================

INVALID_AMOUNT = "يرجى التأكد من صحة المبلغ"
AMOUNT_BELOW_MIN = "الحد الأدنى للمبلغ هو {min}"
AMOUNT_ABOVE_MAX = "الحد الأقصى للمبلغ هو {max}"
AMOUNT_OUT_OF_RANGE = "المبلغ يجب أن يكون بين {min} و {max} د.ج"
INSUFFICIENT_BALANCE = "رصيدك غير كافٍ لإتمام العملية"

# ==================== PHONES ====================

INVALID_MOBILIS_PHONE = "رقم موبيليس يجب أن يبدأ بـ 06 ويتكون من 10 أرقام"
INVALID_PHONE = "رقم الهاتف غير صحيح"

# ==================== IDENTITY ====================

INVALID_NATIONAL_ID = "رقم الهوية الوطنية يجب أن يتكون من 18 رقماً"
INVALID_BIRTH_DATE = "تاريخ الميلاد غير صحيح، استخدم الصيغة يوم/شهر/سنة"
FULL_NAME_REQUIRED = "يرجى إدخال الاسم الكامل كما في بطاقة الهوية"
VERIFICATION_PENDING = "لديك طلب توثيق قيد المراجعة بالفعل"
ALREADY_VERIFIED = "حسابك موثق بالفعل"
VERIFICATION_SUBMITTED = "تم إرسال طلب التوثيق، سيتم مراجعته قريباً"
ID_UPLOAD_FAILED = "تعذر رفع صورة الهوية، يرجى المحاولة مرة أخرى"

# ==================== DIASPORA ====================

DIASPORA_MISSING_FIELDS = "يرجى ملء جميع الحقول المطلوبة"
DIASPORA_SUBMITTED = "تم إرسال الطلب بنجاح، سيتم التواصل معك قريباً لإكمال العملية"
DIASPORA_USAGE = "/diaspora <هاتف المستلم> | <المبلغ> | <بلد الإقامة> | [المدينة] | [اسم المستلم] | [ملاحظة]"

# ==================== RECEIPTS ====================

RECEIPT_REQUIRED = "يرجى رفع صورة رسالة تأكيد الإرسال"
RECEIPT_TOO_LARGE = "الحد الأقصى لحجم الصورة هو 5 ميجابايت"
RECEIPT_NOT_IMAGE = "يجب أن يكون الملف صورة"
RECEIPT_UPLOAD_FAILED = "فشل في رفع صورة التأكيد"

# ==================== FLEXY ====================

FLEXY_DISABLED = "خدمة إيداع الفليكسي غير متاحة حالياً"
FLEXY_NO_RECEIVING_NUMBER = "رقم الاستقبال غير محدد، يرجى المحاولة لاحقاً"
FLEXY_DAILY_LIMIT = "لقد وصلت إلى الحد الأقصى ({limit} طلبات يومياً)"
FLEXY_DUPLICATE = "يوجد طلب مماثل تم إرساله مؤخراً. انتظر قليلاً قبل المحاولة مرة أخرى."
FLEXY_SUBMITTED = "تم إرسال طلب إيداع الفليكسي بنجاح. سيتم مراجعته قريباً."
FLEXY_SUBMIT_FAILED = "فشل في إرسال طلب الإيداع"
FLEXY_SETTINGS_SAVED = "تم تحديث إعدادات الفليكسي بنجاح"
FLEXY_ASK_AMOUNT = "💰 أدخل المبلغ الذي تريد إيداعه ({min} - {max})"
FLEXY_ASK_PHONE = "📱 أدخل رقم موبيليس الذي سترسل منه الفليكسي"
FLEXY_ASK_RECEIPT = "🧾 أرسل صورة رسالة تأكيد الإرسال"
UNIQUE_AMOUNT_TAKEN = "المبلغ الفريد لم يعد متاحاً. أدخل المبلغ من جديد للحصول على مبلغ فريد جديد."
UNIQUE_AMOUNT_CHECK_FAILED = "تعذر التحقق من المبلغ، يرجى المحاولة مرة أخرى"
UNIQUE_AMOUNT_NONE_FREE = "لا يوجد مبلغ متاح حالياً لهذا الإيداع، يرجى المحاولة لاحقاً أو اختيار مبلغ آخر"

# ==================== QR / TRANSFERS ====================

CAMERA_UNAVAILABLE = "لم نتمكن من الوصول للكاميرا. يرجى التأكد من الأذونات."
QR_UNREADABLE = "لم نتمكن من قراءة الكود بشكل صحيح"
QR_INVALID_CARD = "الكود المسحوب لا يحتوي على رقم بطاقة صحيح"
QR_GENERATION_FAILED = "لم نتمكن من إنشاء QR كود"
TRANSFER_DONE = "تم تحويل {amount} إلى {name}"
TRANSFER_FAILED = "فشل في عملية التحويل"
TRANSFER_CHOOSE = "📷 امسح رمز QR للمستلم، أو أدخل رقم هاتفه يدوياً"
TRANSFER_ASK_PHONE = "📞 أدخل رقم هاتف المستلم"
TRANSFER_ASK_AMOUNT = "💰 أدخل المبلغ المراد تحويله"
SCAN_SEND_PHOTO = "📷 أرسل صورة واضحة لرمز QR"

# ==================== GIFT CARDS ====================

GIFT_CARD_ASK_CODE = "🎁 أدخل رقم البطاقة أو أرسل صورة رمز QR"
GIFT_CARD_INVALID = "رقم البطاقة يجب أن يتكون من 11 إلى 12 رقماً"
GIFT_CARD_REDEEMED = "تم تعمير البطاقة بنجاح: {amount}"
GIFT_CARD_FAILED = "حدث خطأ أثناء تعمير البطاقة"

# ==================== WITHDRAWALS ====================

WITHDRAWAL_METHOD_DISABLED = "طريقة السحب هذه غير متاحة حالياً"
WITHDRAWAL_ACCOUNT_REQUIRED = "يرجى إدخال رقم الحساب واسم صاحب الحساب"
WITHDRAWAL_LOCATION_REQUIRED = "يرجى تحديد مكان الاستلام"
WITHDRAWAL_SUBMITTED = "تم إرسال طلب السحب بنجاح"

# ==================== ADMIN ====================

REJECTION_REASON_REQUIRED = "يجب إدخال سبب الرفض"
REQUEST_APPROVED = "✅ تم قبول الطلب"
REQUEST_REJECTED = "❌ تم رفض الطلب"
SETTINGS_REFRESHED = "🔄 تم تحديث الإعدادات ({count} عنصر)"


def fee_breakdown_text(
    amount: Decimal, fee: Decimal, result: Decimal, result_label: str = "ستستلم"
) -> str:
    """Fee preview block shown before confirmation"""
    return (
        f"💰 المبلغ: {MonetaryDecimal.format_dzd(amount)}\n"
        f"➖ الرسوم: {MonetaryDecimal.format_dzd(fee)}\n"
        f"━━━━━━━━━━━━━\n"
        f"✅ {result_label}: {MonetaryDecimal.format_dzd(result)}"
    )


def flexy_instructions(receiving_number: str, unique_amount: Decimal, fee: Decimal, net: Decimal) -> str:
    return (
        f"📲 أرسل بالضبط {MonetaryDecimal.format_dzd(unique_amount)} فليكسي إلى الرقم:\n"
        f"<code>{receiving_number}</code>\n\n"
        f"⚠️ المبلغ فريد لتمييز طلبك، لا تغيّره\n\n"
        f"{fee_breakdown_text(unique_amount, fee, net)}"
    )


def summarize_row(row: Dict[str, Any], amount_key: str = "amount") -> str:
    """One line per queue row in the admin console"""
    amount = row.get(amount_key)
    parts = [f"#{str(row.get('id', ''))[:8]}"]
    if amount is not None:
        parts.append(MonetaryDecimal.format_dzd(amount))
    for key in ("payment_method", "withdrawal_method", "phone_number", "player_id"):
        if row.get(key):
            parts.append(str(row[key]))
    return " • ".join(parts)


def status_label(status: Optional[str]) -> str:
    return {
        "pending": "⏳ قيد المراجعة",
        "approved": "✅ مقبول",
        "completed": "✅ مكتمل",
        "rejected": "❌ مرفوض",
        "cancelled": "🚫 ملغى",
    }.get(status or "", status or "")
