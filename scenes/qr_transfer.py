"""
QR Transfer Scene Definition

Peer transfer to another OpaY user.

Flow: Choose → {Scan QR | Enter Phone | Show My QR} → Amount & Confirm → Submitted
"""

from components.qr_scan import release_camera
from services.scene_engine import ComponentConfig, ComponentType, SceneDefinition, SceneStep

choose_step = SceneStep(
    step_id="choose",
    title="💸 تحويل",
    description="📷 امسح رمز QR للمستلم، أو أدخل رقم هاتفه يدوياً",
    components=[
        ComponentConfig(
            component_type=ComponentType.SELECTION_MENU,
            config={
                "options": [
                    {"label": "📷 مسح QR", "value": "camera", "step": "camera"},
                    {"label": "⌨️ إدخال الرقم", "value": "manual", "step": "manual"},
                    {"label": "🔳 رمزي للاستلام", "value": "show_qr", "step": "show_qr"},
                ],
            },
        )
    ],
    next_steps=["camera", "manual", "show_qr"],
    can_go_back=False,
)

camera_step = SceneStep(
    step_id="camera",
    title="📷 مسح QR",
    description="📷 أرسل صورة واضحة لرمز QR الخاص بالمستلم",
    components=[
        ComponentConfig(
            component_type=ComponentType.QR_SCAN,
            config={"payload": "transfer"},
            on_success="confirm",
            on_error="choose",
        )
    ],
    next_steps=["confirm"],
    on_exit=[release_camera],
)

manual_step = SceneStep(
    step_id="manual",
    title="⌨️ رقم المستلم",
    description="📞 أدخل رقم هاتف المستلم",
    components=[
        ComponentConfig(
            component_type=ComponentType.PHONE_INPUT,
            config={"kind": "recipient"},
            on_success="confirm",
        )
    ],
    next_steps=["confirm"],
)

show_qr_step = SceneStep(
    step_id="show_qr",
    title="🔳 رمز الاستلام",
    description="اعرض هذا الرمز على المرسل ليحوّل لك مباشرة",
    components=[ComponentConfig(component_type=ComponentType.QR_DISPLAY)],
)

confirm_step = SceneStep(
    step_id="confirm",
    title="✅ تأكيد التحويل",
    description="💰 أدخل المبلغ المراد تحويله إلى {recipient_name} ثم أكد",
    components=[
        ComponentConfig(
            component_type=ComponentType.AMOUNT_INPUT,
            config={"field": "amount", "fee_kind": "transfer"},
        ),
        ComponentConfig(
            component_type=ComponentType.CONFIRMATION,
            config={"requires": ["recipient", "amount"]},
        ),
    ],
    next_steps=["submitted"],
    requires=["recipient"],
)

submitted_step = SceneStep(
    step_id="submitted",
    title="🎉 تم التحويل",
    description="تمت عملية التحويل بنجاح",
    requires=["recipient", "amount"],
    can_go_back=False,
)

qr_transfer_scene = SceneDefinition(
    scene_id="qr_transfer",
    name="QR Transfer",
    description="Send money to another user by QR code or phone number",
    steps=[choose_step, camera_step, manual_step, show_qr_step, confirm_step, submitted_step],
    initial_step="choose",
    final_steps=["submitted"],
    submit_step="submitted",
)
