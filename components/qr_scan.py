"""
QR Scan Component

Each photo the user sends opens a camera scan session over it. The session is
kept in the scene's resources so that leaving the step, cancelling the scene
or sending the next photo always releases it (see release_camera).
"""

import logging
from typing import Any, Dict, Optional

from services.qr_code_service import QRCodeService
from services.qr_scanner import photo_frames
from services.scene_engine import ComponentConfig, SceneInput, SceneState
from utils import messages
from utils.exception_handler import CameraUnavailableError

logger = logging.getLogger(__name__)

CAMERA_RESOURCE = "camera"


def release_camera(scene_state: SceneState) -> None:
    """Exit hook for scan steps"""
    session = scene_state.resources.pop(CAMERA_RESOURCE, None)
    if session is not None:
        session.stop()


class QrScanComponent:

    async def process_input(
        self,
        scene_state: SceneState,
        component_config: ComponentConfig,
        scene_input: SceneInput,
    ) -> Optional[Dict[str, Any]]:
        if scene_input.photo is None:
            return None

        release_camera(scene_state)
        factory = scene_input.services.get("camera_factory")
        try:
            if factory is None:
                raise CameraUnavailableError("no QR decoder configured", messages.CAMERA_UNAVAILABLE)
            session = factory(scene_input.photo)
            scene_state.resources[CAMERA_RESOURCE] = session
            await session.start()
        except CameraUnavailableError as e:
            release_camera(scene_state)
            return {"success": False, "error": e.user_message, "fallback": True}

        found: Dict[str, str] = {}
        payload = await session.scan(lambda text: found.setdefault("payload", text), photo_frames(scene_input.photo))
        release_camera(scene_state)
        if not payload:
            return {"success": False, "error": messages.QR_UNREADABLE}

        kind = component_config.config.get("payload", "transfer")
        if kind == "gift_card":
            data = {"card_code": QRCodeService.parse_gift_card_code(payload)}
        else:
            data = {"recipient": QRCodeService.parse_transfer_payload(payload)}
        logger.info(f"📷 QR decoded in {scene_state.scene_id} for user {scene_state.user_id}")
        return {"success": True, "data": data, "submit": bool(component_config.config.get("submit"))}
