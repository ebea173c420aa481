"""Plain-text bodies for scheduled customer messages."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class EmailContent:
    subject: str
    body: str


def first_name(full_name: str | None) -> str | None:
    if not full_name or not full_name.strip():
        return None
    return full_name.strip().split()[0]


def format_local_time(local: datetime) -> str:
    """3:00 PM (no leading zero, portable across platforms)."""
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {suffix}"


def _greeting(name: str | None, *, sms: bool) -> str:
    if sms:
        return f"Hi {name}! " if name else ""
    return f"Hi {name}," if name else "Hi there,"


def _sign_off(business: str) -> str:
    return f"\n\nThanks,\n{business}"


# =============================================================================
# Appointment reminders
# =============================================================================


def reminder_24h_sms(name: str | None, business: str, local_start: datetime, booking_url: str | None) -> str:
    text = (
        f"{_greeting(name, sms=True)}Reminder: your appointment with {business} "
        f"is tomorrow at {format_local_time(local_start)}."
    )
    if booking_url:
        text += f" Need to reschedule? {booking_url}"
    return text


def reminder_1h_sms(name: str | None, business: str, local_start: datetime) -> str:
    return (
        f"{_greeting(name, sms=True)}Your {business} appointment is in 1 hour "
        f"({format_local_time(local_start)}). We look forward to seeing you."
    )


def reminder_24h_email(
    name: str | None, business: str, local_start: datetime, booking_url: str | None
) -> EmailContent:
    lines = [
        _greeting(name, sms=False),
        "",
        f"This is a reminder that your appointment with {business} is tomorrow, "
        f"{local_start:%A, %B} {local_start.day} at {format_local_time(local_start)}.",
    ]
    if booking_url:
        lines += ["", f"If you need to reschedule, you can do so here: {booking_url}"]
    return EmailContent(
        subject=f"Reminder: your {business} appointment is tomorrow",
        body="\n".join(lines) + _sign_off(business),
    )


def reminder_1h_email(name: str | None, business: str, local_start: datetime) -> EmailContent:
    body = "\n".join(
        [
            _greeting(name, sms=False),
            "",
            f"Your appointment with {business} starts in about an hour, "
            f"at {format_local_time(local_start)}.",
        ]
    )
    return EmailContent(
        subject=f"Your {business} appointment is in 1 hour",
        body=body + _sign_off(business),
    )


# =============================================================================
# Nurture follow-ups
# =============================================================================


def nurture_day1_sms(name: str | None, business: str, booking_url: str | None) -> str:
    text = f"{_greeting(name, sms=True)}Following up on your call with {business}. Ready to book?"
    if booking_url:
        text += f" {booking_url}"
    return text


def nurture_day4_sms(name: str | None, business: str, booking_url: str | None) -> str:
    text = f"{_greeting(name, sms=True)}Still thinking it over? {business} is happy to help."
    if booking_url:
        text += f" Book anytime: {booking_url}"
    return text


def nurture_day1_email(
    name: str | None,
    business: str,
    booking_url: str | None,
    portal_url: str | None,
    call_summary: str | None,
) -> EmailContent:
    lines = [
        _greeting(name, sms=False),
        "",
        f"Thanks for calling {business}.",
        f"As we discussed: {call_summary}" if call_summary else "We'd love to help with your questions.",
    ]
    if booking_url:
        lines += ["", f"Schedule your consultation: {booking_url}"]
    if portal_url:
        lines += ["", f"You can also upload documents through our secure portal: {portal_url}"]
    return EmailContent(
        subject=f"Following up on our conversation - {business}",
        body="\n".join(lines) + _sign_off(business),
    )


def nurture_day4_email(
    name: str | None, business: str, booking_url: str | None, portal_url: str | None
) -> EmailContent:
    lines = [
        _greeting(name, sms=False),
        "",
        f"We wanted to check in. {business} is still here whenever you're ready.",
    ]
    if booking_url:
        lines += ["", f"Book a time that works for you: {booking_url}"]
    if portal_url:
        lines += ["", f"Questions or documents? Use our portal: {portal_url}"]
    return EmailContent(
        subject=f"We're still here to help - {business}",
        body="\n".join(lines) + _sign_off(business),
    )
