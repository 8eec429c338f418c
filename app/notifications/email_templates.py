# Change order email templates: HTML for Resend
# Colors: accent #E89A1D, header #1c2127, light #F8FAFC
from html import escape

BASE_TEMPLATE = """
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; margin: 0; padding: 0; background: #F8FAFC; }}
    .container {{ max-width: 600px; margin: 0 auto; background: white; }}
    .header {{ background: #1c2127; padding: 24px; text-align: center; }}
    .header h1 {{ color: #E89A1D; margin: 0; font-size: 22px; letter-spacing: 1px; }}
    .content {{ padding: 32px 24px; color: #1E293B; line-height: 1.6; }}
    .content h2 {{ color: #1c2127; margin-top: 0; }}
    .btn {{ display: inline-block; padding: 14px 28px; border-radius: 8px; text-decoration: none; font-weight: 600; font-size: 16px; margin: 8px 4px; }}
    .btn-sign {{ background: #10B981; color: white !important; }}
    .card {{ border: 1px solid #E2E8F0; border-radius: 8px; padding: 16px; margin: 16px 0; background: #F8FAFC; }}
    .card-label {{ font-size: 12px; color: #94A3B8; text-transform: uppercase; letter-spacing: 0.5px; margin-bottom: 4px; }}
    .card-value {{ font-size: 15px; color: #1E293B; font-weight: 500; }}
    .credit {{ color: #DC2626; }}
    .footer {{ padding: 16px 24px; text-align: center; color: #94A3B8; font-size: 12px; border-top: 1px solid #E2E8F0; }}
    .timestamp {{ color: #94A3B8; font-size: 13px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1>{company_name}</h1>
    </div>
    <div class="content">
      {content}
    </div>
    <div class="footer">
      <p>{company_name} &mdash; Change Order {co_number}</p>
      <p>The signed copy of this change order is attached as a PDF.</p>
    </div>
  </div>
</body>
</html>
"""


def render_client_sign_request(
    client_name: str,
    company_name: str,
    project_label: str,
    co_number: str,
    title: str,
    description: str,
    total: str,
    is_credit: bool,
    sign_url: str,
    is_reminder: bool = False,
) -> str:
    """Sent to the client contact with the change order PDF attached."""
    heading = "Reminder: Change Order Awaiting Signature" if is_reminder else "Change Order &mdash; Signature Required"
    intro = (
        "This is a reminder that the change order below is still awaiting your signature"
        if is_reminder
        else "has issued a change order"
    )
    greeting = f"Hi {escape(client_name)}," if client_name else "Hello,"
    project = f" for <strong>{escape(project_label)}</strong>" if project_label else ""
    if is_reminder:
        lead = f"<p>{intro}{project}.</p>"
    else:
        lead = f"<p><strong>{escape(company_name)}</strong> {intro}{project}.</p>"

    content = f"""
    <h2>{heading}</h2>
    <p>{greeting}</p>
    {lead}

    <div class="card">
      <div class="card-label">Change Order</div>
      <div class="card-value">{escape(co_number)} &mdash; {escape(title)}</div>
    </div>

    {"<div class='card'><div class='card-label'>Scope</div><div class='card-value'>" + escape(description) + "</div></div>" if description else ""}

    <div class="card">
      <div class="card-label">{"Total Credit" if is_credit else "Total"}</div>
      <div class="card-value {"credit" if is_credit else ""}" style="font-size: 20px;">{escape(total)}</div>
    </div>

    <p style="text-align: center; margin-top: 24px;">
      <a href="{escape(sign_url)}" class="btn btn-sign">Review &amp; Sign</a>
    </p>

    <p class="timestamp">
      The full change order is attached. Signing records your name, signature and
      the time of signing.
    </p>
    """
    return BASE_TEMPLATE.format(
        content=content,
        company_name=escape(company_name),
        co_number=escape(co_number),
    )


def sign_request_subject(co_number: str, title: str, company_name: str, is_reminder: bool = False) -> str:
    prefix = "Reminder: " if is_reminder else ""
    return f"{prefix}Change Order {co_number}: {title} — {company_name}"
