"""Mask phone numbers and emails before they reach logs or alerts."""

import re

_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_PHONE_RE = re.compile(r"\+?\d[\d\s().-]{8,}\d")


def mask_phone(phone: str | None) -> str:
    """+15551234567 -> ***4567"""
    if not phone:
        return ""
    digits = re.sub(r"\D", "", phone)
    if len(digits) < 4:
        return "***"
    return f"***{digits[-4:]}"


def mask_email(email: str | None) -> str:
    """jane@example.com -> j***@example.com"""
    if not email:
        return ""
    local, _, domain = email.partition("@")
    if not domain:
        return "***"
    prefix = local[:1] if local else ""
    return f"{prefix}***@{domain}"


def mask_recipient(recipient: str | None) -> str:
    """Mask either kind of address."""
    if recipient and "@" in recipient:
        return mask_email(recipient)
    return mask_phone(recipient)


def mask_text(text: str | None) -> str:
    """Mask every email and phone-looking run inside free text."""
    if not text:
        return ""
    masked = _EMAIL_RE.sub(lambda m: mask_email(m.group(0)), text)
    return _PHONE_RE.sub(lambda m: mask_phone(m.group(0)), masked)
