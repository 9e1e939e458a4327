"""Notification content builders.

Customer-supplied fields (licence, test claims, notes) are escaped and only
displayed; nothing here branches on whether they are true.
"""

from __future__ import annotations

from decimal import Decimal
from html import escape
from typing import Any
from urllib.parse import urlencode

from coachcarter.core.enums import PackageTypeEnum
from coachcarter.modules.booking.models import Booking
from coachcarter.modules.booking.schemas import package_display_name
from coachcarter.shared.utils import first_name

CURRENCY_SYMBOLS = {"GBP": "£", "EUR": "€", "USD": "$"}


def format_amount(amount: Decimal, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    if symbol:
        return f"{symbol}{amount:.2f}"
    return f"{amount:.2f} {currency.upper()}"


def _is_pass_guarantee(booking: Booking) -> bool:
    return booking.package_type == PackageTypeEnum.PASS_GUARANTEE


def _has_test_booked(booking: Booking) -> bool:
    return booking.claimed_test_status == "has_test"


def availability_url(booking: Booking, public_site_url: str) -> str:
    query = urlencode({"ref": booking.booking_reference, "email": booking.customer_email})
    return f"{public_site_url}/availability.html?{query}"


def customer_confirmation(booking: Booking, followup_delay_minutes: int) -> tuple[str, str]:
    name = escape(first_name(booking.customer_name))
    amount = format_amount(booking.amount_paid, booking.currency)
    reference = escape(booking.booking_reference)

    if _is_pass_guarantee(booking):
        subject = f"Pass Guarantee confirmed — Reference: {booking.booking_reference}"
        test_line = (
            "<p><strong>Your test date:</strong> We'll verify this with DVSA and plan your start date around it.</p>"
            if _has_test_booked(booking)
            else "<p><strong>Your test:</strong> We'll book this for week 16-18 of your programme.</p>"
        )
        html = (
            f"<h1>You're in, {name}</h1>"
            f"<p><strong>Reference:</strong> {reference}<br>"
            f"<strong>Amount paid:</strong> {amount}</p>"
            "<h2>Next steps:</h2><ol>"
            "<li><strong>Verify your details</strong>: we're checking your licence and test status</li>"
            "<li><strong>Submit your availability</strong>: link coming in the next email "
            f"(arriving in {followup_delay_minutes} minutes)</li>"
            "<li><strong>We propose slots</strong>: within 24 hours of receiving your availability</li>"
            "<li><strong>First lesson confirmed</strong>: meet your instructor and begin your 18 weeks</li>"
            "</ol>"
            f"{test_line}"
            "<p>Questions? Reply to this email.</p>"
        )
        return subject, html

    subject = f"Booking confirmed — Reference: {booking.booking_reference}"
    package_name = escape(package_display_name(booking.package_type, booking.package_hours))
    html = (
        f"<h1>Thanks, {name}</h1>"
        f"<p><strong>Reference:</strong> {reference}<br>"
        f"<strong>Package:</strong> {package_name}<br>"
        f"<strong>Amount paid:</strong> {amount}</p>"
        "<p>We'll be in touch within 24 hours to schedule your first lesson.</p>"
        "<p>Questions? Reply to this email.</p>"
    )
    return subject, html


def staff_alert(booking: Booking) -> tuple[str, str]:
    prefix = "[ACTION REQUIRED]" if _is_pass_guarantee(booking) else "[NEW BOOKING]"
    heading = "Pass Guarantee — Verification Required" if _is_pass_guarantee(booking) else "New Booking"
    subject = f"{prefix} {booking.booking_reference}"

    rows = [
        ("Reference", booking.booking_reference),
        ("Customer", booking.customer_name or "Unknown"),
        ("Email", booking.customer_email),
        ("Licence", booking.provisional_licence or "Not provided"),
        ("Package", package_display_name(booking.package_type, booking.package_hours)),
        ("Amount", format_amount(booking.amount_paid, booking.currency)),
        ("Test status", booking.claimed_test_status or "Unknown"),
    ]
    if booking.claimed_test_reference:
        rows.append(("Test ref", booking.claimed_test_reference))
    if booking.claimed_test_centre:
        rows.append(("Centre", booking.claimed_test_centre))
    table = "".join(
        f"<tr><td><strong>{escape(label)}:</strong></td><td>{escape(str(value))}</td></tr>"
        for label, value in rows
    )

    if _has_test_booked(booking):
        action = (
            "<p><strong>Action:</strong> Verify the DVSA reference and confirm the test date.</p>"
            '<p><a href="https://www.gov.uk/check-driving-test">Check DVSA</a></p>'
        )
    else:
        action = "<p>No test booked: book it at week 16-18.</p>"
    return subject, f"<h2>{heading}</h2><table>{table}</table>{action}"


def chat_alert(booking: Booking) -> dict[str, Any]:
    title = "New Pass Guarantee" if _is_pass_guarantee(booking) else "New Booking"
    fields = [
        ("Ref", booking.booking_reference),
        ("Amount", format_amount(booking.amount_paid, booking.currency)),
        ("Customer", booking.customer_name or "N/A"),
        ("Email", booking.customer_email),
        ("Licence", booking.provisional_licence or "N/A"),
        ("Test", booking.claimed_test_status or "N/A"),
    ]
    return {
        "text": f"{title}: {booking.booking_reference}",
        "blocks": [
            {
                "type": "section",
                "fields": [{"type": "mrkdwn", "text": f"*{label}:*\n{value}"} for label, value in fields],
            },
        ],
    }


def availability_request(booking: Booking, public_site_url: str) -> tuple[str, str]:
    url = escape(availability_url(booking, public_site_url), quote=True)
    subject = f"Submit your availability — Reference: {booking.booking_reference}"
    html = (
        f"<h1>When can you take lessons, {escape(first_name(booking.customer_name))}?</h1>"
        "<p>To match you with the right instructor, we need to know your typical weekly availability.</p>"
        f'<p><a href="{url}">Submit Availability</a></p>'
        "<p><strong>Takes 2 minutes.</strong></p>"
        f"<p>Reference: {escape(booking.booking_reference)}</p>"
    )
    return subject, html


def availability_staff_alert(
    booking: Booking,
    available_slots: int,
    preferred_slots: int,
    frequency_preference: str | None,
    notes: str | None,
    public_site_url: str,
) -> tuple[str, str]:
    subject = f"Availability received — {booking.booking_reference}"
    html = (
        "<h2>Availability Submitted</h2>"
        f"<p><strong>Reference:</strong> {escape(booking.booking_reference)}</p>"
        f"<p><strong>Email:</strong> {escape(booking.customer_email)}</p>"
        f"<p><strong>Slots selected:</strong> {available_slots + preferred_slots} total "
        f"({preferred_slots} preferred)</p>"
        f"<p><strong>Frequency:</strong> {escape(frequency_preference or 'Not specified')}</p>"
        f"<p><strong>Notes:</strong> {escape(notes or 'None')}</p>"
        f'<p><a href="{escape(public_site_url, quote=True)}/admin.html">View in dashboard</a></p>'
    )
    return subject, html


def availability_chat_alert(booking: Booking, available_slots: int, preferred_slots: int) -> dict[str, Any]:
    return {
        "text": (
            f"Availability received for {booking.booking_reference}: "
            f"{available_slots + preferred_slots} slots ({preferred_slots} preferred)"
        ),
    }


def availability_confirmation(booking: Booking) -> tuple[str, str]:
    subject = f"Availability received — Reference: {booking.booking_reference}"
    html = (
        f"<h1>Thanks, {escape(first_name(booking.customer_name))}</h1>"
        "<p>We've received your availability and will propose lesson slots within 24 hours.</p>"
        f"<p>Reference: {escape(booking.booking_reference)}</p>"
    )
    return subject, html
