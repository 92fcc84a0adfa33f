"""
E-mail compose for invoices and estimates.

We never send mail ourselves. The client is handed a compose action:

  - "mailto": open the native mail client with the URL as-is
  - "copy":   no recipient, or the URL would be too long for mail clients;
              show the full text for the user to paste manually

Works on document dicts (document_service.document_to_dict) so it can be
used without a database session.
"""

import logging
from datetime import date
from urllib.parse import quote

from .config import settings

logger = logging.getLogger(__name__)


TEMPLATES = {
    "invoice": {
        "subject": "Invoice #{number} from {business_name}",
        "message": (
            "Dear {customer_name},\n\n"
            "Please find your invoice #{number} dated {issue_date} below.\n\n"
            "Invoice Summary:\n"
            "- Amount Due: {total}\n"
            "- Due Date: {due_date}\n\n"
            "Payment can be made by check payable to {business_name} and mailed to:\n"
            "{business_address}\n\n"
            "If you have any questions about this invoice, please contact us at {business_phone}.\n\n"
            "Thank you for your business!\n\n"
            "Best regards,\n"
            "{business_name}"
        ),
    },
    "estimate": {
        "subject": "Estimate #{number} from {business_name}",
        "message": (
            "Dear {customer_name},\n\n"
            "Thank you for the opportunity to quote your project. "
            "Your estimate #{number} dated {issue_date} is below.\n\n"
            "Estimated Total: {total}\n"
            "This estimate is valid until {valid_until}.\n\n"
            "To approve, reply to this e-mail or call us at {business_phone}.\n\n"
            "Best regards,\n"
            "{business_name}"
        ),
    },
    "reminder": {
        "subject": "Payment Reminder - Invoice #{number}",
        "message": (
            "Dear {customer_name},\n\n"
            "This is a friendly reminder that invoice #{number} for {total} is due.\n\n"
            "If you have already sent payment, please disregard this message. "
            "If you have any questions or need to discuss payment arrangements, "
            "please contact us at {business_phone}.\n\n"
            "Thank you for your business!\n\n"
            "Best regards,\n"
            "{business_name}"
        ),
    },
}


class UnknownTemplate(ValueError):
    pass


def _fmt(amount) -> str:
    """Format a number as $X,XXX.XX"""
    try:
        return f"${float(amount):,.2f}"
    except (ValueError, TypeError):
        return "$0.00"


def _fmt_date(value) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            return value
    return value.strftime("%B %d, %Y")


class _Blank(dict):
    """format_map helper: unknown placeholders render empty instead of raising."""

    def __missing__(self, key):
        return ""


class EmailComposer:

    def __init__(self, max_mailto_length: int = None):
        self.max_mailto_length = max_mailto_length or settings.MAILTO_MAX_LENGTH

    def template_for(self, document: dict, template: str = None) -> str:
        template = template or document.get("doc_type", "invoice")
        if template not in TEMPLATES:
            raise UnknownTemplate(f"Unknown e-mail template: {template!r}. Available: {list(TEMPLATES)}")
        if template == "reminder" and document.get("doc_type") != "invoice":
            raise UnknownTemplate("Payment reminders apply to invoices only")
        return template

    def variables(self, document: dict, business: dict) -> dict:
        customer = document.get("customer") or {}
        return {
            "number": document.get("number") or "DRAFT",
            "customer_name": customer.get("name") or "Customer",
            "issue_date": _fmt_date(document.get("issue_date")),
            "due_date": _fmt_date(document.get("due_date")),
            "valid_until": _fmt_date(document.get("valid_until")),
            "total": _fmt(document.get("total")),
            "business_name": business.get("name", ""),
            "business_address": business.get("address", ""),
            "business_phone": business.get("phone", ""),
        }

    def render_plain_text(self, document: dict, business: dict) -> str:
        """Plain-text version of the document, for the e-mail body and copy fallback."""
        customer = document.get("customer") or {}
        kind = (document.get("doc_type") or "invoice").upper()
        contact = " | ".join(p for p in [
            f"Phone: {business['phone']}" if business.get("phone") else "",
            f"Email: {business['email']}" if business.get("email") else "",
        ] if p)

        lines = [business.get("name", ""), business.get("address", "")]
        if contact:
            lines.append(contact)
        lines += [
            "",
            f"{kind} #{document.get('number') or 'DRAFT'}",
            f"Date: {_fmt_date(document.get('issue_date'))}",
            f"Status: {(document.get('status') or 'draft').upper()}",
        ]
        if document.get("due_date"):
            lines.append(f"Due: {_fmt_date(document['due_date'])}")
        if document.get("valid_until"):
            lines.append(f"Valid Until: {_fmt_date(document['valid_until'])}")

        lines += ["", "Bill To:", customer.get("name") or ""]
        for label, key in (("Email", "email"), ("Phone", "phone"), ("Address", "address")):
            if customer.get(key):
                lines.append(f"{label}: {customer[key]}")

        lines += ["", "Services:"]
        for item in document.get("line_items", []):
            lines.append(
                f"{item['description']} - {item['quantity']:g} {item['unit']} x "
                f"{_fmt(item['unit_price'])} = {_fmt(item['amount'])}"
            )

        tax_pct = (document.get("tax_rate") or 0) * 100
        lines += [
            "",
            f"Subtotal: {_fmt(document.get('subtotal'))}",
            f"Tax ({tax_pct:g}%): {_fmt(document.get('tax'))}",
            f"Total: {_fmt(document.get('total'))}",
        ]
        if document.get("notes"):
            lines += ["", f"Notes: {document['notes']}"]

        if kind == "INVOICE":
            lines += [
                "",
                "Payment Terms:",
                "Payment is due within 30 days of invoice date.",
                f"Make checks payable to: {business.get('name', '')}",
                f"Mail payments to: {business.get('address', '')}",
            ]
        lines += ["", "Thank you for your business!"]
        return "\n".join(lines).strip()

    def build_mailto(self, to: str, subject: str, body: str) -> str:
        return "mailto:%s?subject=%s&body=%s" % (
            quote(to or "", safe="@"),
            quote(subject, safe=""),
            quote(body, safe=""),
        )

    def compose(self, document: dict, business: dict, template: str = None,
                to: str = None, subject: str = None, message: str = None) -> dict:
        """
        Build the compose action for a document.

        Returns:
            {"template", "to", "subject", "body", "action", "mailto_url", "copy_text"}
            mailto_url is None when action == "copy".
        """
        template = self.template_for(document, template)
        variables = self.variables(document, business)
        tpl = TEMPLATES[template]

        to = (to or (document.get("customer") or {}).get("email") or "").strip()
        subject = subject or tpl["subject"].format_map(_Blank(variables))
        intro = message or tpl["message"].format_map(_Blank(variables))
        body = intro + "\n\n" + "-" * 40 + "\n\n" + self.render_plain_text(document, business)

        mailto_url = None
        action = "copy"
        if to:
            url = self.build_mailto(to, subject, body)
            if len(url) <= self.max_mailto_length:
                mailto_url, action = url, "mailto"
            else:
                # Long bodies get truncated by some clients; keep the note short and let the user paste the rest
                url = self.build_mailto(to, subject, intro)
                if len(url) <= self.max_mailto_length:
                    mailto_url, action = url, "mailto"

        logger.info("Composed %s e-mail for %s (%s)", template, document.get("number"), action)
        return {
            "template": template,
            "to": to or None,
            "subject": subject,
            "body": body,
            "action": action,
            "mailto_url": mailto_url,
            "copy_text": f"To: {to}\nSubject: {subject}\n\n{body}" if to else f"Subject: {subject}\n\n{body}",
        }
