"""
LandlordComply - PDF Rendering
Notice letters and itemized statements built as HTML and converted with
xhtml2pdf (pure Python, no system libraries).
"""

import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from html import escape
from typing import Optional

from xhtml2pdf import pisa

logger = logging.getLogger(__name__)


def html_to_pdf(html_content: str, css: str = "") -> bytes:
    """Render an HTML body (optionally with CSS) to PDF bytes."""
    if css:
        body = html_content.split("<body>")[1].split("</body>")[0] if "<body>" in html_content else html_content
        html_content = f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<style>
{css}
</style>
</head>
<body>
{body}
</body>
</html>
"""

    result = io.BytesIO()
    status = pisa.CreatePDF(io.StringIO(html_content), dest=result)
    if status.err:
        logger.warning("PDF rendering reported %s error(s)", status.err)
    return result.getvalue()


DOCUMENT_CSS = """
@page {
    size: letter;
    margin: 0.8in;
    @frame footer {
        -pdf-frame-content: footer;
        bottom: 0.4in;
        margin-left: 0.8in;
        margin-right: 0.8in;
        height: 0.4in;
    }
}
body {
    font-family: Helvetica;
    font-size: 11pt;
    line-height: 1.4;
}
.title {
    text-align: center;
    font-size: 16pt;
    font-weight: bold;
    margin-bottom: 4pt;
}
.subtitle {
    text-align: center;
    font-size: 11pt;
    color: #666666;
    margin-bottom: 18pt;
}
.block { margin-bottom: 14pt; }
.section-title {
    font-size: 12pt;
    font-weight: bold;
    margin: 14pt 0 6pt 0;
}
table.items { width: 100%; border-collapse: collapse; }
table.items th {
    background-color: #f2f2f2;
    text-align: left;
    padding: 4pt;
    border-bottom: 1px solid #cccccc;
}
table.items td { padding: 4pt; border-bottom: 1px solid #e5e5e5; }
td.amount, th.amount { text-align: right; }
table.summary { width: 60%; margin-left: 40%; }
table.summary td { padding: 2pt 4pt; }
tr.total td { border-top: 2px solid #333333; font-weight: bold; }
.legal {
    margin-top: 16pt;
    padding: 8pt;
    background-color: #f7f7f7;
    font-size: 9pt;
}
.signature-line {
    border-top: 1px solid #333333;
    width: 200pt;
    margin-top: 36pt;
}
#footer {
    font-size: 8pt;
    color: #666666;
    text-align: center;
}
"""


@dataclass
class LineItem:
    description: str
    category: str
    amount: float
    notes: Optional[str] = None


@dataclass
class DispositionData:
    """Everything either document prints."""
    case_id: str
    landlord_name: str
    tenant_name: str
    property_address: str
    jurisdiction_name: str
    return_deadline_days: int
    lease_start_date: datetime
    lease_end_date: datetime
    move_out_date: datetime
    due_date: datetime
    deposit_amount: float
    deposit_interest: float
    total_deductions: float
    refund_amount: float
    issued_on: datetime
    forwarding_address: Optional[str] = None
    deductions: list[LineItem] = field(default_factory=list)
    citations: list[tuple[str, Optional[str]]] = field(default_factory=list)  # (code, title)
    itemization_requirements: Optional[str] = None


def _date(dt: datetime) -> str:
    return f"{dt:%B} {dt.day}, {dt.year}"


def _money(amount: float) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def _category(value: str) -> str:
    return value.replace("_", " ").title()


def _deduction_rows(items: list[LineItem], with_notes: bool) -> str:
    rows = []
    for item in items:
        notes = f"<td>{escape(item.notes or '-')}</td>" if with_notes else ""
        rows.append(
            f"<tr><td>{escape(item.description)}</td><td>{escape(_category(item.category))}</td>"
            f"{notes}<td class=\"amount\">{_money(item.amount)}</td></tr>"
        )
    return "\n".join(rows)


def render_notice_letter_html(data: DispositionData) -> str:
    recipient = escape(data.forwarding_address) if data.forwarding_address else escape(data.property_address)
    interest_row = (
        f"<tr><td>Interest Accrued</td><td class=\"amount\">{_money(data.deposit_interest)}</td></tr>"
        if data.deposit_interest > 0
        else ""
    )

    deductions_html = ""
    if data.deductions:
        deductions_html = f"""
    <div class="section-title">Deductions</div>
    <table class="items">
        <tr><th>Description</th><th>Category</th><th class="amount">Amount</th></tr>
        {_deduction_rows(data.deductions, with_notes=False)}
        <tr class="total"><td colspan="2">Total Deductions</td><td class="amount">{_money(data.total_deductions)}</td></tr>
    </table>"""

    owed = abs(data.refund_amount)
    if data.refund_amount >= 0:
        outcome_label = "Amount Refunded to You:"
        outcome_text = (
            f"Enclosed with this notice, please find a check in the amount of <b>{_money(owed)}</b> "
            "representing the balance of your security deposit after the above-listed deductions."
        )
    else:
        outcome_label = "Balance Owed:"
        outcome_text = (
            f"Based on the above calculations, a balance of <b>{_money(owed)}</b> is owed. "
            "Please remit payment within 30 days to avoid further action."
        )

    citation_text = ""
    if data.citations:
        citation_text = " See: " + "; ".join(escape(code) for code, _ in data.citations) + "."

    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body>
    <div class="title">Security Deposit Disposition Notice</div>
    <div class="subtitle">Pursuant to {escape(data.jurisdiction_name)} Law</div>

    <div class="block">{_date(data.issued_on)}</div>

    <div class="block">
        {escape(data.tenant_name)}<br/>
        {recipient}
    </div>

    <div class="block">Dear {escape(data.tenant_name)},</div>

    <div class="block">
        This letter serves as formal notice regarding the disposition of your security deposit for
        the rental property located at <b>{escape(data.property_address)}</b>.
        Your tenancy ended on {_date(data.move_out_date)}.
    </div>

    <div class="section-title">Security Deposit</div>
    <table class="summary">
        <tr><td>Original Security Deposit</td><td class="amount">{_money(data.deposit_amount)}</td></tr>
        {interest_row}
    </table>
    {deductions_html}

    <table class="summary">
        <tr class="total"><td>{outcome_label}</td><td class="amount">{_money(owed)}</td></tr>
    </table>

    <div class="block">{outcome_text}</div>

    <div class="legal">
        This notice is provided in compliance with {escape(data.jurisdiction_name)} law, which requires
        landlords to return security deposits or provide an itemized statement of deductions within
        {data.return_deadline_days} days of the tenant vacating the premises.{citation_text}
    </div>

    <div class="block">
        If you have any questions regarding this notice or the deductions listed above, please
        contact me at your earliest convenience.
    </div>

    <div>Sincerely,</div>
    <div class="signature-line"></div>
    <div>{escape(data.landlord_name)}</div>

    <div id="footer">
        Generated by LandlordComply | Notice Date: {_date(data.issued_on)} | Due Date: {_date(data.due_date)}
    </div>
</body>
</html>
"""


def render_itemized_statement_html(data: DispositionData) -> str:
    subtotal = data.deposit_amount + data.deposit_interest
    interest_row = (
        f"<tr><td>Interest Accrued</td><td class=\"amount\">{_money(data.deposit_interest)}</td></tr>"
        if data.deposit_interest > 0
        else ""
    )

    if data.deductions:
        deductions_html = f"""
    <table class="items">
        <tr><th>Description</th><th>Category</th><th>Notes</th><th class="amount">Amount</th></tr>
        {_deduction_rows(data.deductions, with_notes=True)}
        <tr class="total"><td colspan="3">Total Deductions</td><td class="amount">{_money(data.total_deductions)}</td></tr>
    </table>"""
    else:
        deductions_html = "<div class=\"block\">No deductions were taken from the security deposit.</div>"

    citations_html = ""
    if data.citations:
        items = "".join(
            f"<li>{escape(code)}{f' - {escape(title)}' if title else ''}</li>" for code, title in data.citations
        )
        citations_html = f"<div><b>Applicable law:</b><ul>{items}</ul></div>"

    requirements_html = (
        f"<div>{escape(data.itemization_requirements)}</div>" if data.itemization_requirements else ""
    )
    outcome_label = "Refund Due to Tenant" if data.refund_amount >= 0 else "Balance Owed by Tenant"

    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body>
    <div class="title">Itemized Security Deposit Statement</div>
    <div class="subtitle">Statement Date: {_date(data.issued_on)}</div>

    <table class="summary" style="width: 100%; margin-left: 0;">
        <tr><td><b>Tenant</b></td><td>{escape(data.tenant_name)}</td></tr>
        <tr><td><b>Property Address</b></td><td>{escape(data.property_address)}</td></tr>
        <tr><td><b>Lease Period</b></td><td>{_date(data.lease_start_date)} - {_date(data.lease_end_date)}</td></tr>
        <tr><td><b>Move-out Date</b></td><td>{_date(data.move_out_date)}</td></tr>
        <tr><td><b>Jurisdiction</b></td><td>{escape(data.jurisdiction_name)}</td></tr>
    </table>

    <div class="section-title">Security Deposit Received</div>
    <table class="summary">
        <tr><td>Original Security Deposit</td><td class="amount">{_money(data.deposit_amount)}</td></tr>
        {interest_row}
        <tr class="total"><td>Subtotal</td><td class="amount">{_money(subtotal)}</td></tr>
    </table>

    <div class="section-title">Itemized Deductions</div>
    {deductions_html}

    <div class="section-title">Summary</div>
    <table class="summary">
        <tr><td>Deposit + Interest</td><td class="amount">{_money(subtotal)}</td></tr>
        <tr><td>Less: Total Deductions</td><td class="amount">({_money(data.total_deductions)})</td></tr>
        <tr class="total"><td>{outcome_label}</td><td class="amount">{_money(abs(data.refund_amount))}</td></tr>
    </table>

    <div class="legal">
        <b>Legal Compliance Notice</b><br/>
        This statement is provided within {data.return_deadline_days} days of move-out as required by
        {escape(data.jurisdiction_name)} law.
        {requirements_html}
        {citations_html}
    </div>

    <div id="footer">Case ID: {escape(data.case_id[:8])}... | Generated by LandlordComply | {_date(data.issued_on)}</div>
</body>
</html>
"""
