"""
Scene Engine Components Library

Reusable input components for the Scene Engine. Each turns one SceneInput
into {'success', 'data'} or {'success': False, 'error'}.
"""

from .amount_input import AmountInputComponent
from .code_input import CodeInputComponent
from .confirmation import ConfirmationComponent
from .phone_input import PhoneInputComponent
from .qr_scan import QrScanComponent, release_camera
from .receipt_upload import ReceiptUploadComponent
from .selection_menu import SelectionMenuComponent

__all__ = [
    'AmountInputComponent',
    'CodeInputComponent',
    'ConfirmationComponent',
    'PhoneInputComponent',
    'QrScanComponent',
    'ReceiptUploadComponent',
    'SelectionMenuComponent',
    'release_camera',
]
