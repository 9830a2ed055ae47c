"""
Flexy Deposit Scene Definition

Wallet top-up by Mobilis airtime transfer.

Flow: Amount (unique amount reserved) → Sender Phone → Receipt Photo → Confirm → Submitted
"""

from services.scene_engine import ComponentConfig, ComponentType, SceneDefinition, SceneStep
from utils.input_validation import InputValidator


def _check_quote(data):
    InputValidator.validate_amount_range(data.get("unique_amount"))


def _check_sender_phone(data):
    InputValidator.validate_mobilis_phone(data.get("sender_phone"))


def _check_receipt(data):
    InputValidator.validate_receipt(data.get("receipt"))


# Step 1: Amount
amount_step = SceneStep(
    step_id="amount",
    title="💰 مبلغ الإيداع",
    description="أدخل المبلغ الذي تريد إيداعه ({min_amount} - {max_amount})",
    components=[
        ComponentConfig(
            component_type=ComponentType.AMOUNT_INPUT,
            config={"field": "amount", "quote": "flexy", "quick_amounts": [500, 1000, 2000, 5000]},
            on_success="phone",
        )
    ],
    next_steps=["phone"],
    validators=[_check_quote],
    can_go_back=False,
)

# Step 2: Sender phone
phone_step = SceneStep(
    step_id="phone",
    title="📱 رقم المرسل",
    description="أدخل رقم موبيليس الذي سترسل منه الفليكسي",
    components=[
        ComponentConfig(
            component_type=ComponentType.PHONE_INPUT,
            config={"field": "sender_phone", "kind": "mobilis"},
            on_success="receipt",
        )
    ],
    next_steps=["receipt"],
    requires=["unique_amount"],
    validators=[_check_sender_phone],
)

# Step 3: Receipt
receipt_step = SceneStep(
    step_id="receipt",
    title="🧾 صورة التأكيد",
    description="أرسل صورة رسالة تأكيد الإرسال (5 ميجابايت كحد أقصى)",
    components=[
        ComponentConfig(
            component_type=ComponentType.RECEIPT_UPLOAD,
            config={"field": "receipt"},
            on_success="confirm",
        )
    ],
    next_steps=["confirm"],
    requires=["unique_amount", "sender_phone"],
    validators=[_check_receipt],
)

# Step 4: Confirm
confirm_step = SceneStep(
    step_id="confirm",
    title="✅ تأكيد الطلب",
    description="تأكد من إرسال المبلغ الفريد ثم أكد الطلب",
    components=[
        ComponentConfig(
            component_type=ComponentType.CONFIRMATION,
            config={"requires": ["unique_amount", "sender_phone", "receipt"]},
        )
    ],
    next_steps=["submitted"],
    requires=["unique_amount", "sender_phone", "receipt"],
    guards=[_check_sender_phone, _check_receipt],
)

# Step 5: Submitted
submitted_step = SceneStep(
    step_id="submitted",
    title="🎉 تم الإرسال",
    description="تم إرسال طلب إيداع الفليكسي بنجاح. سيتم مراجعته قريباً.",
    requires=["unique_amount", "sender_phone", "receipt"],
    can_go_back=False,
)

flexy_deposit_scene = SceneDefinition(
    scene_id="flexy_deposit",
    name="Flexy Deposit",
    description="Wallet deposit by Mobilis airtime transfer",
    steps=[amount_step, phone_step, receipt_step, confirm_step, submitted_step],
    initial_step="amount",
    final_steps=["submitted"],
    submit_step="submitted",
)
