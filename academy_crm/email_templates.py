"""
MJML email templates for staff notifications
"""

from html import escape
from typing import Optional

from .config import FRONTEND_URL

THEME = {
    "primary": "#4f46e5",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#16a34a",
    "danger": "#ef4444",
}

REQUEST_TYPE_LABELS = {
    "cancel": "Cancellation",
    "postpone": "Postponement",
    "replacement": "Replacement",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button href="{cta_url}" background-color="{THEME['primary']}" color="#ffffff"
              font-weight="600" border-radius="8px" padding="18px 40px" font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="40px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>
        {cta_section}
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              Sent automatically by Academy CRM.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _detail_rows(rows: list[tuple[str, str]]) -> str:
    return "\n".join(
        f"""
    <mj-text padding="4px 0">
      <strong>{escape(label)}:</strong> {escape(str(value))}
    </mj-text>"""
        for label, value in rows
    )


def change_request_submitted_template(
    instructor_name: str,
    request_type: str,
    cycle_name: str,
    meeting_date: str,
    reason: Optional[str],
) -> str:
    """Notify managers that an instructor asked to change a meeting"""
    label = REQUEST_TYPE_LABELS.get(request_type, request_type)
    content = f"""
    <mj-text color="{THEME['text_muted']}" padding="0 0 24px 0">
      {escape(instructor_name)} submitted a {label.lower()} request that needs review.
    </mj-text>
    {_detail_rows([
        ("Cycle", cycle_name),
        ("Meeting date", meeting_date),
        ("Request", label),
        ("Reason", reason or "-"),
    ])}
    """
    return get_base_template(
        title=f"New {label.lower()} request",
        preview_text=f"{instructor_name} - {cycle_name} ({meeting_date})",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/meeting-requests",
        cta_label="Review request",
    )


def change_request_reviewed_template(
    instructor_name: str,
    request_type: str,
    status: str,
    cycle_name: str,
    meeting_date: str,
    review_notes: Optional[str],
) -> str:
    """Tell the instructor how their request was decided"""
    label = REQUEST_TYPE_LABELS.get(request_type, request_type)
    color = THEME["success"] if status == "approved" else THEME["danger"]
    content = f"""
    <mj-text>Hi {escape(instructor_name)},</mj-text>
    <mj-text>
      Your {label.lower()} request for {escape(cycle_name)} on {escape(meeting_date)} was
      <span style="color: {color}; font-weight: 600;">{escape(status)}</span>.
    </mj-text>
    {_detail_rows([("Notes", review_notes)]) if review_notes else ""}
    """
    return get_base_template(
        title=f"Request {status}",
        preview_text=f"{label} request {status}",
        content_sections=content,
    )


def cycle_completed_template(
    cycle_name: str,
    course_name: str,
    instructor_name: str,
    completed_meetings: int,
    total_meetings: int,
    total_revenue: str,
    total_payment: str,
    total_profit: str,
    cycle_id: str,
) -> str:
    """Summary sent to management when a cycle finishes its last meeting"""
    content = f"""
    <mj-text color="{THEME['text_muted']}" padding="0 0 24px 0">
      All meetings of this cycle have been held.
    </mj-text>
    {_detail_rows([
        ("Course", course_name),
        ("Instructor", instructor_name),
        ("Meetings", f"{completed_meetings}/{total_meetings}"),
        ("Revenue", total_revenue),
        ("Instructor payments", total_payment),
        ("Profit", total_profit),
    ])}
    """
    return get_base_template(
        title=f"Cycle completed: {escape(cycle_name)}",
        preview_text=f"{cycle_name} finished {completed_meetings}/{total_meetings} meetings",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/cycles/{cycle_id}",
        cta_label="Open cycle",
    )
