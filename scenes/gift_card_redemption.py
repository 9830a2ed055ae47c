"""
Gift Card Redemption Scene Definition

Flow: Choose → {Scan QR | Enter Code} → Submitted
The code is redeemed as soon as it is read; there is no separate confirm step.
"""

from components.qr_scan import release_camera
from services.scene_engine import ComponentConfig, ComponentType, SceneDefinition, SceneStep
from services.shop_service import normalize_gift_card_code


def _check_card_code(data):
    normalize_gift_card_code(data.get("card_code"))


choose_step = SceneStep(
    step_id="choose",
    title="🎁 تعمير بطاقة",
    description="🎁 امسح رمز QR على البطاقة أو أدخل رقمها",
    components=[
        ComponentConfig(
            component_type=ComponentType.SELECTION_MENU,
            config={
                "options": [
                    {"label": "📷 مسح QR", "value": "camera", "step": "camera"},
                    {"label": "⌨️ إدخال الرقم", "value": "manual", "step": "manual"},
                ],
            },
        )
    ],
    next_steps=["camera", "manual"],
    can_go_back=False,
)

camera_step = SceneStep(
    step_id="camera",
    title="📷 مسح البطاقة",
    description="📷 أرسل صورة واضحة لرمز QR الموجود على البطاقة",
    components=[
        ComponentConfig(
            component_type=ComponentType.QR_SCAN,
            config={"payload": "gift_card", "submit": True},
            on_error="choose",
        )
    ],
    next_steps=["submitted"],
    on_exit=[release_camera],
)

manual_step = SceneStep(
    step_id="manual",
    title="⌨️ رقم البطاقة",
    description="أدخل رقم البطاقة (11 إلى 12 رقماً)",
    components=[
        ComponentConfig(
            component_type=ComponentType.CODE_INPUT,
            config={"field": "card_code", "submit": True},
        )
    ],
    next_steps=["submitted"],
)

submitted_step = SceneStep(
    step_id="submitted",
    title="🎉 تم التعمير",
    description="تم تعمير البطاقة بنجاح",
    requires=["card_code"],
    guards=[_check_card_code],
    can_go_back=False,
)

gift_card_scene = SceneDefinition(
    scene_id="gift_card_redemption",
    name="Gift Card Redemption",
    description="Redeem a prepaid card into the wallet",
    steps=[choose_step, camera_step, manual_step, submitted_step],
    initial_step="choose",
    final_steps=["submitted"],
    submit_step="submitted",
)
