"""Translation of permission names to CDP ``Browser.PermissionType`` values."""

from collections.abc import Iterable

from cdpcontext.exceptions import InvalidPermissionError

PERMISSIONS_TO_PROTOCOL: dict[str, str] = {
    'geolocation': 'geolocation',
    'midi': 'midi',
    'midi-sysex': 'midiSysex',
    'notifications': 'notifications',
    'camera': 'videoCapture',
    'microphone': 'audioCapture',
    'background-sync': 'backgroundSync',
    'ambient-light-sensor': 'sensors',
    'accelerometer': 'sensors',
    'gyroscope': 'sensors',
    'magnetometer': 'sensors',
    'accessibility-events': 'accessibilityEvents',
    'clipboard-read': 'clipboardReadWrite',
    'clipboard-write': 'clipboardSanitizedWrite',
    'payment-handler': 'paymentHandler',
}


def translate_permissions(permissions: Iterable[str]) -> list[str]:
    """Map permission names to protocol permission types.

    Several names share one protocol type (the sensors); the result lists each
    type once, in first-seen order.

    Raises:
        InvalidPermissionError: for the first unknown name. Nothing is
            translated in that case, so no partial grant can follow.
    """
    protocol_permissions: dict[str, None] = {}
    for permission in permissions:
        protocol = PERMISSIONS_TO_PROTOCOL.get(permission)
        if protocol is None:
            raise InvalidPermissionError(permission)
        protocol_permissions[protocol] = None

    return list(protocol_permissions)
