"""Time-based one-time passwords (RFC 6238) for console two-factor login."""

import base64
import io
import re
from datetime import datetime, timezone

import pyotp
import qrcode
from pyotp.utils import strings_equal

CODE_DIGITS = 6
TIME_STEP = 30  # seconds

_CODE_PATTERN = re.compile(r"^\d{6}$")


def generate_secret() -> str:
    """New random base32 secret (160 bits)."""
    return pyotp.random_base32()


def generate_code(secret: str, for_time: datetime | None = None) -> str:
    """Code for ``for_time`` (default: now)."""
    totp = pyotp.TOTP(secret, digits=CODE_DIGITS, interval=TIME_STEP)
    if for_time is None:
        return totp.now()
    return totp.at(for_time)


def matching_step(
    secret: str | None,
    code: str | None,
    window: int = 1,
    for_time: datetime | None = None,
) -> int | None:
    """Time step (counter) a 6-digit code was generated for.

    Args:
        secret: Base32 secret
        code: Code entered by the user
        window: Number of 30s steps accepted either side of ``for_time``
        for_time: Reference time (default: now)

    Returns:
        The matching step, or None if the code is malformed or outside the window
    """
    if not secret or not code:
        return None
    code = code.strip()
    if not _CODE_PATTERN.match(code):
        return None
    totp = pyotp.TOTP(secret, digits=CODE_DIGITS, interval=TIME_STEP)
    current = totp.timecode(for_time or datetime.now(timezone.utc))
    for step in range(current - window, current + window + 1):
        if strings_equal(totp.generate_otp(step), code):
            return step
    return None


def verify_code(secret: str | None, code: str | None, window: int = 1) -> bool:
    """Check a 6-digit code, tolerating ``window`` steps of clock drift."""
    return matching_step(secret, code, window) is not None


def provisioning_uri(username: str, secret: str, issuer: str) -> str:
    """``otpauth://`` URI for authenticator apps."""
    totp = pyotp.TOTP(secret, digits=CODE_DIGITS, interval=TIME_STEP)
    return totp.provisioning_uri(name=username, issuer_name=issuer)


def qr_code_data_url(uri: str) -> str:
    """Render a provisioning URI as a PNG QR code data URL.

    Args:
        uri: ``otpauth://`` URI

    Returns:
        Base64 data URL string
    """
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")

    img_base64 = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{img_base64}"
