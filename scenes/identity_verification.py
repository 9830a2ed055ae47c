"""
Identity Verification Scene Definition

Flow: National ID → Name on card → Birth date → Front photo → Back photo → Confirm → Submitted
"""

from services.scene_engine import ComponentConfig, ComponentType, SceneDefinition, SceneStep
from utils.input_validation import InputValidator

ID_FIELDS = ["national_id", "full_name", "date_of_birth", "id_front", "id_back"]


def _check_national_id(data):
    InputValidator.validate_national_id(data.get("national_id"))


def _check_documents(data):
    InputValidator.validate_receipt(data.get("id_front"))
    InputValidator.validate_receipt(data.get("id_back"))


def _text_step(step_id, title, description, kind, field, next_step, **kwargs):
    return SceneStep(
        step_id=step_id,
        title=title,
        description=description,
        components=[
            ComponentConfig(
                component_type=ComponentType.CODE_INPUT,
                config={"kind": kind, "field": field},
                on_success=next_step,
            )
        ],
        next_steps=[next_step],
        **kwargs,
    )


def _photo_step(step_id, title, description, field, next_step, requires):
    return SceneStep(
        step_id=step_id,
        title=title,
        description=description,
        components=[
            ComponentConfig(
                component_type=ComponentType.RECEIPT_UPLOAD,
                config={"field": field},
                on_success=next_step,
            )
        ],
        next_steps=[next_step],
        requires=requires,
    )


national_id_step = _text_step(
    "national_id", "🪪 توثيق الهوية", "أدخل رقم التعريف الوطني (18 رقماً) كما يظهر على بطاقتك",
    "national_id", "national_id", "full_name", can_go_back=False, validators=[_check_national_id],
)

full_name_step = _text_step(
    "full_name", "👤 الاسم الكامل", "أدخل الاسم الكامل كما هو مكتوب في بطاقة الهوية",
    "full_name", "full_name", "birth_date", requires=["national_id"],
)

birth_date_step = _text_step(
    "birth_date", "📅 تاريخ الميلاد", "أدخل تاريخ الميلاد بالصيغة يوم/شهر/سنة (مثال 25/04/1995)",
    "birth_date", "date_of_birth", "front", requires=["national_id", "full_name"],
)

front_step = _photo_step(
    "front", "📷 الوجه الأمامي", "أرسل صورة واضحة للوجه الأمامي لبطاقة الهوية",
    "id_front", "back", ["national_id", "full_name", "date_of_birth"],
)

back_step = _photo_step(
    "back", "📷 الوجه الخلفي", "أرسل صورة واضحة للوجه الخلفي لبطاقة الهوية",
    "id_back", "confirm", ["national_id", "full_name", "date_of_birth", "id_front"],
)

confirm_step = SceneStep(
    step_id="confirm",
    title="✅ تأكيد الطلب",
    description="رقم التعريف: {national_id}\nالاسم: {full_name}\n\nتأكد من صحة المعلومات ثم أكد الطلب",
    components=[
        ComponentConfig(
            component_type=ComponentType.CONFIRMATION,
            config={"requires": ID_FIELDS},
        )
    ],
    next_steps=["submitted"],
    requires=ID_FIELDS,
    guards=[_check_national_id, _check_documents],
)

submitted_step = SceneStep(
    step_id="submitted",
    title="🎉 تم الإرسال",
    description="تم إرسال طلب التوثيق، سيتم مراجعته قريباً.",
    requires=ID_FIELDS,
    can_go_back=False,
)

identity_verification_scene = SceneDefinition(
    scene_id="identity_verification",
    name="Identity Verification",
    description="Submit national ID details and photos for review",
    steps=[national_id_step, full_name_step, birth_date_step, front_step, back_step, confirm_step, submitted_step],
    initial_step="national_id",
    final_steps=["submitted"],
    submit_step="submitted",
)
