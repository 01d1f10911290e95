"""
formatter.py — Message templates for authority and proximity alerts.

    Authority email
        Subject: New Ocean Hazard Report: {kind} - {label} Severity
        Body:    type, severity "{label} ({n}/10)", address, coordinates,
                 reporter, description, report id, map link

    Proximity email
        Subject: Ocean Hazard Alert: {kind} Reported Nearby
        Body:    greeting by name, hazard details, distance notice,
                 address, map link

    WhatsApp / SMS
        Plain text, WhatsApp-style *bold* markers, same content as the
        proximity email without HTML.

User-supplied text (names, descriptions) is HTML-escaped in the HTML
variants only.
"""

from __future__ import annotations

from html import escape
from typing import Optional

from backend.app.alerts.models import AlertMessage, HazardEvent, RecipientProfile
from backend.app.core.config import settings
from backend.app.spatial.radius_utils import format_coordinates, format_distance

# Severity label → banner colour
_LABEL_COLOURS = {
    "Low": "#16a34a",
    "Medium": "#f59e0b",
    "High": "#dc2626",
    "Critical": "#7f1d1d",
}


def map_link(event: HazardEvent, base_url: Optional[str] = None) -> str:
    """Google Maps link for the hazard location."""
    base = base_url or settings.MAP_LINK_BASE_URL
    return f"{base}{event.location.lat},{event.location.lng}"


# ═══════════════════════════════════════════════════════════════════════════
# Authority
# ═══════════════════════════════════════════════════════════════════════════

def build_authority_message(event: HazardEvent, address: str) -> AlertMessage:
    label = event.severity_label
    subject = f"New Ocean Hazard Report: {event.kind.value} - {label} Severity"
    link = map_link(event)
    coords = format_coordinates(event.location)

    text_lines = [
        "NEW OCEAN HAZARD REPORT",
        "",
        f"Type: {event.kind.value}",
        f"Severity: {label} ({event.severity}/10)",
        f"Location: {address}",
        f"Coordinates: {coords}",
        f"Reported By: {event.reporter_name}",
    ]
    if event.description:
        text_lines.append(f"Description: {event.description}")
    text_lines += [
        f"Report ID: {event.report_id}",
        f"Reported At: {event.created_at.strftime('%Y-%m-%d %H:%M UTC')}",
        "",
        f"View on map: {link}",
        "",
        "OceanGuard Hazard Monitoring System",
        "This email was automatically generated. Please do not reply.",
    ]

    colour = _LABEL_COLOURS.get(label, "#f59e0b")
    description_html = (
        f"<p><strong>Description:</strong> {escape(event.description)}</p>"
        if event.description else ""
    )
    html = f"""
    <div style="font-family:Arial,sans-serif;max-width:600px;margin:auto;">
      <div style="background:{colour};color:white;padding:16px;border-radius:8px 8px 0 0;">
        <h2 style="margin:0;">New Ocean Hazard Report</h2>
      </div>
      <div style="border:1px solid #ddd;border-top:none;padding:16px;border-radius:0 0 8px 8px;">
        <p><strong>Type:</strong> {escape(event.kind.value)}</p>
        <p><strong>Severity:</strong> {label} ({event.severity}/10)</p>
        <p><strong>Location:</strong> {escape(address)}</p>
        <p style="font-size:12px;color:#6b7280;">Coordinates: {coords}</p>
        <p><strong>Reported By:</strong> {escape(event.reporter_name)}</p>
        {description_html}
        <p><strong>Report ID:</strong> {escape(event.report_id)}</p>
        <p><a href="{link}">View on Google Maps</a></p>
        <hr>
        <p style="font-size:12px;color:#6b7280;">
          OceanGuard Hazard Monitoring System. This email was automatically generated.
        </p>
      </div>
    </div>
    """
    return AlertMessage(subject=subject, text="\n".join(text_lines), html=html)


# ═══════════════════════════════════════════════════════════════════════════
# Proximity (nearby recipients)
# ═══════════════════════════════════════════════════════════════════════════

def build_proximity_email(
    event: HazardEvent,
    recipient: RecipientProfile,
    address: str,
    radius_m: float,
) -> AlertMessage:
    subject = f"Ocean Hazard Alert: {event.kind.value} Reported Nearby"
    link = map_link(event)
    coords = format_coordinates(event.location)
    radius = format_distance(radius_m)

    text = (
        f"Hello {recipient.name},\n\n"
        f"A new ocean hazard has been reported within {radius} of your location.\n\n"
        f"Type: {event.kind.value}\n"
        f"Severity: {event.severity_label} ({event.severity}/10)\n"
        + (f"Description: {event.description}\n" if event.description else "")
        + f"Location: {address}\n"
        f"Coordinates: {coords}\n"
        f"View on map: {link}\n\n"
        "Please exercise caution in the affected area. Stay safe!\n"
    )

    description_html = (
        f"<p><strong>Description:</strong> {escape(event.description)}</p>"
        if event.description else ""
    )
    html = f"""
    <div style="font-family:Arial,sans-serif;max-width:600px;margin:auto;">
      <h2 style="color:#dc2626;">Ocean Hazard Alert</h2>
      <p>Hello {escape(recipient.name)},</p>
      <p>A new ocean hazard has been reported within {radius} of your location:</p>
      <div style="background:#fef2f2;border-left:4px solid #dc2626;padding:12px;">
        <p><strong>Type:</strong> {escape(event.kind.value)}</p>
        <p><strong>Severity:</strong> {event.severity_label} ({event.severity}/10)</p>
        {description_html}
        <p><strong>Location:</strong> {escape(address)}</p>
        <p style="font-size:12px;color:#6b7280;">Coordinates: {coords}</p>
        <p><a href="{link}">View on Google Maps</a></p>
      </div>
      <p>Please exercise caution in the affected area. Stay safe!</p>
      <hr>
      <p style="color:#6b7280;font-size:12px;">
        You received this alert because your saved location is near the reported hazard.
      </p>
    </div>
    """
    return AlertMessage(subject=subject, text=text, html=html)


def build_proximity_sms(
    event: HazardEvent,
    recipient: RecipientProfile,
    address: str,
) -> AlertMessage:
    """Plain-text alert for WhatsApp / SMS (no HTML)."""
    text = (
        "*OceanGuard Hazard Alert*\n\n"
        f"Hello {recipient.name},\n\n"
        "A new ocean hazard has been reported near you:\n\n"
        f"*{event.kind.value}*\n"
        f"Severity: {event.severity_label} ({event.severity}/10)\n"
        + (f"\n{event.description}\n" if event.description else "")
        + f"\n*Location:*\n{address}\n\n"
        f"View on map: {map_link(event)}\n\n"
        "Please exercise caution. Stay safe!"
    )
    return AlertMessage(subject=f"Ocean Hazard Alert: {event.kind.value}", text=text)
