"""
Scene Definitions - Declarative wallet flows

Each scene file defines its steps, allowed transitions, per-step validation
and the exit hooks that release step-scoped resources.
"""

from .flexy_deposit import flexy_deposit_scene
from .gift_card_redemption import gift_card_scene
from .identity_verification import identity_verification_scene
from .qr_transfer import qr_transfer_scene

ALL_SCENES = [
    flexy_deposit_scene,
    qr_transfer_scene,
    gift_card_scene,
    identity_verification_scene,
]

__all__ = [
    'flexy_deposit_scene',
    'qr_transfer_scene',
    'gift_card_scene',
    'identity_verification_scene',
    'ALL_SCENES',
]
