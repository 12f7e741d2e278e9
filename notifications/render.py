"""
Event renderer: (event type, context) -> per-channel payloads.

Every supported event is one entry in EVENT_TEMPLATES. Adding an event
means adding a table entry; an event tag that is not in the table raises
UnknownEventError from a single place (`get_event_template`).

Rendering is pure. The same event, context and settings always produce
byte-identical output: there is no wall-clock input, and the only time
source is the appointment date/time inside the context.

Design decisions:
- Email HTML uses inline styles only (mail clients strip <style> blocks)
- All context values are HTML-escaped before they reach the email body
- A channel without a recipient is omitted from the result, not emptied
- Missing schedule renders the UNSCHEDULED placeholder everywhere
"""

import re
from dataclasses import dataclass
from html import escape
from typing import Any, Mapping, Optional, Union

from notifications.calendar_invite import build_ics, format_schedule
from notifications.config import NotificationSettings
from notifications.errors import UnknownEventError
from notifications.models import (
    ApplicationCtx,
    EmailPayload,
    EventContext,
    EventType,
    RenderedPayload,
    SlackPayload,
    SmsPayload,
)

UNSCHEDULED = "Unscheduled"
UNKNOWN_STATUS = "Unknown"
DEFAULT_CUSTOMER_NAME = "Customer"
SELF_SHIP_METHODS = {"self_ship", "self", "자가발송"}

THEME = {
    "surface": "#FCFFFC",
    "text": "#1A1C1A",
    "sub": "#4A544A",
    "line": "#D7E3D7",
    "bg_soft": "#F3F8F3",
    "badge_bg": "#E9F6EC",
    "badge_text": "#248232",
    "btn_bg": "#2BA84A",
    "btn_text": "#1A1C1A",
}


# =============================================================================
# Event Templates
# =============================================================================

@dataclass(frozen=True)
class EventTemplate:
    """
    Declarative description of one event's notification.

    `rows` names the summary-table rows in display order (see _ROW_BUILDERS).
    `ctas` names the call-to-action buttons (see _CTA_BUILDERS).
    """
    title: str
    badge: Optional[str]
    rows: tuple[str, ...]
    ctas: tuple[str, ...] = ()
    schedule_label: str = "Schedule"
    note: Optional[str] = None
    self_ship_cta: bool = False
    with_calendar: bool = False
    with_sms: bool = True
    status_in_subject: bool = False
    fixed_status: Optional[str] = None


_FULL_ROWS = ("schedule", "applicant", "racket", "strings", "application")
_CANCEL_ROWS = ("schedule", "applicant", "application")

EVENT_TEMPLATES: dict[EventType, EventTemplate] = {
    EventType.APPLICATION_SUBMITTED: EventTemplate(
        title="Application received",
        badge="Received",
        rows=_FULL_ROWS,
        ctas=("detail", "reschedule"),
        self_ship_cta=True,
        with_calendar=True,
    ),
    EventType.STATUS_UPDATED: EventTemplate(
        title="Application status update",
        badge=None,  # the status itself
        rows=("status", "schedule", "application"),
        ctas=("detail",),
        self_ship_cta=True,
        with_sms=False,
        status_in_subject=True,
    ),
    EventType.SCHEDULE_CONFIRMED: EventTemplate(
        title="Appointment confirmed",
        badge="Confirmed",
        rows=_FULL_ROWS,
        ctas=("detail", "reschedule"),
        self_ship_cta=True,
        with_calendar=True,
        note=(
            "Changes or cancellations are possible up to 24 hours before your visit. "
            "After that, please contact us by phone."
        ),
    ),
    EventType.SCHEDULE_UPDATED: EventTemplate(
        title="Appointment changed",
        badge="Changed",
        rows=_FULL_ROWS,
        ctas=("detail",),
        schedule_label="New schedule",
        with_calendar=True,
    ),
    EventType.SCHEDULE_CANCELED: EventTemplate(
        title="Appointment canceled",
        badge="Canceled",
        rows=_CANCEL_ROWS,
        schedule_label="Canceled schedule",
    ),
    EventType.APPLICATION_CANCELED: EventTemplate(
        title="Application canceled",
        badge="Canceled",
        rows=_CANCEL_ROWS,
        ctas=("reapply",),
        schedule_label="Canceled schedule",
        note=(
            "When you apply again, please choose your preferred date and time once more. "
            "You can reply to this email with any questions."
        ),
    ),
    EventType.SERVICE_COMPLETED: EventTemplate(
        title="Stringing completed",
        badge="Completed",
        rows=_FULL_ROWS,
        ctas=("detail",),
    ),
    EventType.SERVICE_IN_PROGRESS: EventTemplate(
        title="Work in progress",
        badge="In progress",
        rows=("status", "schedule", "application"),
        ctas=("detail",),
        fixed_status="In progress",
    ),
}


def get_event_template(event_type: Union[EventType, str]) -> EventTemplate:
    """Look up the template for an event tag, failing loudly when there is none."""
    try:
        tag = EventType(event_type)
    except ValueError:
        raise UnknownEventError(event_type) from None
    template = EVENT_TEMPLATES.get(tag)
    if template is None:
        raise UnknownEventError(event_type)
    return template


# =============================================================================
# Context Helpers
# =============================================================================

def normalize_phone(raw: Optional[str]) -> str:
    """Reduce a phone-like value to digits only ('' when nothing is left)."""
    return re.sub(r"\D", "", str(raw or ""))


def pick_phone(ctx: EventContext) -> str:
    """
    SMS recipient for a context.

    Preference order: phone given on the application, the account phone,
    then the shipping contact.
    """
    app = ctx.application
    candidates = [
        app.contact_phone,
        ctx.user.phone,
        app.shipping_info.phone if app.shipping_info else None,
    ]
    for candidate in candidates:
        digits = normalize_phone(candidate)
        if digits:
            return digits
    return ""


def short_code(application_id: Optional[str]) -> str:
    """Customer-facing reference code, e.g. DK-A1B2C3."""
    if not application_id:
        return "-"
    return f"DK-{str(application_id)[-6:].upper()}"


def racket_name(app: ApplicationCtx) -> str:
    sd = app.string_details
    return (sd.racket_type if sd else None) or "-"


def string_names(app: ApplicationCtx) -> str:
    sd = app.string_details
    if sd is None:
        return "-"
    names = [item.name for item in sd.string_items if item.name]
    if names:
        return ", ".join(names)
    if sd.string_types:
        return ", ".join(sd.string_types)
    return "-"


def is_self_ship(app: ApplicationCtx) -> bool:
    method = app.shipping_info.collection_method if app.shipping_info else None
    return bool(method) and method.lower() in SELF_SHIP_METHODS


def schedule_text(app: ApplicationCtx) -> Optional[str]:
    sd = app.string_details
    if sd is None:
        return None
    return format_schedule(sd.preferred_date, sd.preferred_time)


# =============================================================================
# HTML Layout
# =============================================================================

def _header_html(brand: str, title: str, badge: Optional[str]) -> str:
    badge_html = ""
    if badge:
        badge_html = (
            f'<span style="font-size:12px;padding:6px 10px;border-radius:999px;'
            f'background:{THEME["badge_bg"]};color:{THEME["badge_text"]};font-weight:600;">'
            f"{escape(badge)}</span>"
        )
    return (
        f'<div style="padding:18px 20px;border-bottom:1px solid {THEME["line"]};'
        f'display:flex;align-items:center;justify-content:space-between;">'
        f'<div style="font-weight:700;color:{THEME["text"]};font-size:16px;">{escape(brand)}</div>'
        f"{badge_html}</div>"
        f'<div style="padding:20px 20px 8px 20px;">'
        f'<h1 style="margin:0 0 4px 0;font-size:20px;line-height:1.35;color:{THEME["text"]};">{escape(title)}</h1>'
        f'<p style="margin:0;color:{THEME["sub"]};font-size:13px;">A notification from {escape(brand)}.</p>'
        f"</div>"
    )


def _summary_table(rows: list[tuple[str, str]]) -> str:
    cells = "".join(
        f"<tr>"
        f'<td style="padding:12px 14px;font-weight:600;width:120px;color:{THEME["text"]};'
        f'background:{THEME["bg_soft"]};border-bottom:1px solid {THEME["line"]};">{escape(label)}</td>'
        f'<td style="padding:12px 14px;border-bottom:1px solid {THEME["line"]};'
        f'color:{THEME["text"]};">{escape(value)}</td>'
        f"</tr>"
        for label, value in rows
    )
    return (
        f'<table role="presentation" style="border-collapse:collapse;width:100%;'
        f'background:{THEME["surface"]};border:1px solid {THEME["line"]};border-radius:10px;overflow:hidden;">'
        f"{cells}</table>"
    )


def _buttons(ctas: list[tuple[str, str]]) -> str:
    if not ctas:
        return ""
    links = "".join(
        f'<a href="{escape(url, quote=True)}" style="display:inline-block;margin-right:8px;'
        f'padding:11px 16px;border-radius:10px;background:{THEME["btn_bg"]};color:{THEME["btn_text"]};'
        f'text-decoration:none;font-weight:700;font-size:14px;">{escape(label)}</a>'
        for label, url in ctas
    )
    return f'<div style="margin-top:16px;">{links}</div>'


def _footer(brand: str, note: Optional[str]) -> str:
    note_html = ""
    if note:
        note_html = (
            f'<div style="margin-top:18px;padding-top:10px;border-top:1px solid {THEME["line"]};'
            f'color:{THEME["sub"]};font-size:12px;line-height:1.6;">{escape(note)}</div>'
        )
    return (
        f"{note_html}"
        f'<div style="margin-top:14px;color:{THEME["sub"]};font-size:12px;">'
        f"&copy; {escape(brand)} &middot; Open 10:00&ndash;19:00</div>"
    )


def wrap_email(
    brand: str,
    title: str,
    badge: Optional[str],
    preheader: str,
    rows: list[tuple[str, str]],
    ctas: list[tuple[str, str]],
    note: Optional[str],
) -> str:
    """Assemble the full email body."""
    pre = (
        '<span style="display:none;visibility:hidden;opacity:0;color:transparent;height:0;width:0;">'
        f"{escape(preheader)}</span>"
    )
    return (
        f"{pre}"
        f'<div style="max-width:680px;margin:0 auto;background:{THEME["surface"]};'
        f'border:1px solid {THEME["line"]};border-radius:12px;overflow:hidden;'
        f"font-family:system-ui,-apple-system,Segoe UI,Roboto,'Noto Sans KR',sans-serif;\">"
        f"{_header_html(brand, title, badge)}"
        f'<div style="padding:18px 20px;">'
        f"{_summary_table(rows)}{_buttons(ctas)}{_footer(brand, note)}"
        f"</div></div>"
    )


# =============================================================================
# Rendering
# =============================================================================

@dataclass
class _RenderState:
    """Values shared by every channel for one render call."""
    ctx: EventContext
    settings: NotificationSettings
    name: str
    when: str
    status: str
    ref: str


def _detail_url(s: _RenderState) -> str:
    app_id = s.ctx.application.application_id
    return f"{s.settings.base_url}/mypage?tab=applications&applicationId={app_id}"


def _apply_url(s: _RenderState) -> Optional[str]:
    order_id = s.ctx.application.order_id
    if not order_id:
        return None
    return f"{s.settings.base_url}/services/apply?orderId={order_id}"


_ROW_BUILDERS = {
    "schedule": lambda s, t: (t.schedule_label, s.when),
    "applicant": lambda s, t: ("Applicant", f"{s.name} ({s.ctx.user.email or '-'})"),
    "racket": lambda s, t: ("Racket", racket_name(s.ctx.application)),
    "strings": lambda s, t: ("Strings", string_names(s.ctx.application)),
    "application": lambda s, t: ("Application", f"#{s.ctx.application.application_id}"),
    "status": lambda s, t: ("Current status", t.fixed_status or s.status),
}

_CTA_BUILDERS = {
    "detail": lambda s: ("View application", _detail_url(s)),
    "reschedule": lambda s: ("Change schedule", _apply_url(s)),
    "reapply": lambda s: ("Apply again", _apply_url(s) or f"{s.settings.base_url}/services/apply"),
}


def _build_ctas(state: _RenderState, template: EventTemplate) -> list[tuple[str, str]]:
    ctas = []
    for key in template.ctas:
        label, url = _CTA_BUILDERS[key](state)
        if url:
            ctas.append((label, url))
    if template.self_ship_cta and is_self_ship(state.ctx.application):
        app_id = state.ctx.application.application_id
        ctas.append(
            ("Register tracking number", f"{state.settings.base_url}/services/applications/{app_id}/shipping")
        )
    return ctas


def _render_email(state: _RenderState, template: EventTemplate) -> Optional[EmailPayload]:
    to = (state.ctx.user.email or "").strip()
    if not to:
        return None

    brand = state.settings.brand_name
    badge = template.badge or state.status
    rows = [_ROW_BUILDERS[key](state, template) for key in template.rows]
    if template.status_in_subject:
        preheader = f"{state.status} · {state.when} · {state.ref}"
        subject = f"[{brand}] {template.title}: {state.status}"
    else:
        preheader = f"{state.when} · {state.ref}"
        subject = f"[{brand}] {template.title} · {state.when}"

    html = wrap_email(brand, template.title, badge, preheader, rows, _build_ctas(state, template), template.note)

    ics = None
    if template.with_calendar:
        sd = state.ctx.application.string_details
        ics = build_ics(
            state.ctx.application.application_id,
            sd.preferred_date if sd else None,
            sd.preferred_time if sd else None,
            summary=f"{brand} racket stringing appointment",
            description=f"Reference {state.ref}",
            domain=state.settings.calendar_domain,
            brand=brand,
        )

    return EmailPayload(
        to=to,
        subject=subject,
        html=html,
        ics=ics,
        bcc=state.settings.admin_bcc or None,
    )


def _render_sms(state: _RenderState, template: EventTemplate) -> Optional[SmsPayload]:
    if not template.with_sms:
        return None
    phone = pick_phone(state.ctx)
    if not phone:
        return None
    app_id = state.ctx.application.application_id
    lines = [
        f"[{state.settings.brand_name}] {template.title}",
        f"Hi {state.name}",
        f"Schedule: {state.when}",
        f"Application: {app_id}",
        f"Details: {_detail_url(state)}",
    ]
    return SmsPayload(to=phone, text="\n".join(lines))


def _render_slack(state: _RenderState, template: EventTemplate) -> SlackPayload:
    app = state.ctx.application
    parts = [
        f"[{state.settings.brand_name}] {template.title}",
        f"{state.name} ({state.ctx.user.email or '-'})",
        state.when,
        f"#{app.application_id}",
    ]
    if template.status_in_subject or template.fixed_status:
        parts.append(f"status {template.fixed_status or state.status}")
    text = " · ".join(parts)
    if state.ctx.admin_detail_url:
        text += f"\n{state.ctx.admin_detail_url}"
    return SlackPayload(text=text)


def render_event(
    event_type: Union[EventType, str],
    ctx: Union[EventContext, Mapping[str, Any]],
    settings: Optional[NotificationSettings] = None,
) -> RenderedPayload:
    """
    Render every channel payload for an event.

    Args:
        event_type: One of EventType (or its string value)
        ctx: The event context, as a model or a plain dict
        settings: Brand/link/BCC settings; defaults are used when omitted

    Returns:
        RenderedPayload with email/sms/slack set where applicable

    Raises:
        UnknownEventError: If the event tag has no template
    """
    template = get_event_template(event_type)
    if not isinstance(ctx, EventContext):
        ctx = EventContext.model_validate(ctx)
    settings = settings or NotificationSettings()

    name = (ctx.user.name or "").strip() or DEFAULT_CUSTOMER_NAME
    state = _RenderState(
        ctx=ctx,
        settings=settings,
        name=name,
        when=schedule_text(ctx.application) or UNSCHEDULED,
        status=(ctx.application.status or "").strip() or UNKNOWN_STATUS,
        ref=short_code(ctx.application.application_id),
    )

    return RenderedPayload(
        email=_render_email(state, template),
        sms=_render_sms(state, template),
        slack=_render_slack(state, template),
    )
