# loan_exports.py
# Read-only views over an amortization result: chart series, yearly roll-up, CSV, Excel and PDF.

import io
from datetime import datetime
from typing import Dict, List, Any, Optional

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

SCHEDULE_COLUMNS = ["month", "payment", "principal", "interest", "balance"]
SCHEDULE_HEADERS = {
    "month": "Month",
    "payment": "Payment",
    "principal": "Principal",
    "interest": "Interest",
    "balance": "Remaining Balance",
}
SUMMARY_LABELS = [
    ("monthlyPayment", "Monthly Payment"),
    ("totalInterest", "Total Interest"),
    ("totalCost", "Total Cost"),
]

# -----------------------
# Helpers
# -----------------------

def _schedule_frame(result: Dict[str, Any]) -> pd.DataFrame:
    rows = result.get("schedule") or []
    df = pd.DataFrame(rows, columns=SCHEDULE_COLUMNS)
    df["month"] = df["month"].astype(int)
    return df

def export_filename(extension: str, now: Optional[datetime] = None) -> str:
    ts = (now or datetime.now()).strftime("%Y-%m-%d-%H-%M-%S")
    return f"amortization-{ts}.{extension}"

# -----------------------
# Charts & tables
# -----------------------

def chart_series(result: Dict[str, Any]) -> Dict[str, List[Any]]:
    """Column-wise series for the payment composition and balance charts."""
    schedule = result.get("schedule") or []
    return {
        "labels": [row["month"] for row in schedule],
        "principal": [row["principal"] for row in schedule],
        "interest": [row["interest"] for row in schedule],
        "balance": [row["balance"] for row in schedule],
    }

def yearly_schedule(result: Dict[str, Any]) -> List[Dict[str, Any]]:
    df = _schedule_frame(result)
    if df.empty:
        return []
    df["year"] = ((df["month"] - 1) // 12) + 1
    agg = df.groupby("year").agg(
        payment=("payment", "sum"),
        principal=("principal", "sum"),
        interest=("interest", "sum"),
        balance=("balance", "last"),
    ).reset_index()
    records = agg.round(2).to_dict("records")
    for rec in records:
        rec["year"] = int(rec["year"])
    return records

# -----------------------
# CSV
# -----------------------

def export_csv_text(result: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Schedule table, a blank line, then the three summary lines.
    Returns None when there is nothing to export yet.
    """
    if not result:
        return None
    df = _schedule_frame(result).rename(columns=SCHEDULE_HEADERS)
    body = df.to_csv(index=False, float_format="%.2f", lineterminator="\n")
    lines = [body.rstrip("\n"), ""]
    for key, label in SUMMARY_LABELS:
        lines.append(f"{label},{float(result.get(key, 0.0)):.2f}")
    return "\n".join(lines) + "\n"

# -----------------------
# Excel Exporter
# -----------------------

def export_excel_bytes(result: Optional[Dict[str, Any]]) -> Optional[bytes]:
    if not result:
        return None

    df_schedule = _schedule_frame(result).rename(columns=SCHEDULE_HEADERS)
    df_yearly = pd.DataFrame(yearly_schedule(result))
    if not df_yearly.empty:
        df_yearly = df_yearly.rename(columns={"year": "Year", **SCHEDULE_HEADERS})
    df_summary = pd.DataFrame(
        [{"metric": label, "value": result.get(key, 0.0)} for key, label in SUMMARY_LABELS]
    )

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="xlsxwriter") as writer:
        df_schedule.to_excel(writer, sheet_name="Schedule", index=False)
        df_yearly.to_excel(writer, sheet_name="Yearly", index=False)
        df_summary.to_excel(writer, sheet_name="Summary", index=False)

        workbook = writer.book
        header_fmt = workbook.add_format({"bold": True, "bg_color": "#DCE6F1", "border": 1})
        currency_fmt = workbook.add_format({"num_format": "$#,##0.00", "border": 1})
        int_fmt = workbook.add_format({"num_format": "0", "border": 1})
        default_fmt = workbook.add_format({"border": 1})

        def format_sheet(sheet_name, df):
            worksheet = writer.sheets[sheet_name]
            worksheet.set_row(0, None, header_fmt)
            if df.empty:
                return
            for i, col in enumerate(df.columns):
                width = max(12, min(40, len(str(col)) + 2))
                name = str(col).lower()
                if any(x in name for x in ("balance", "payment", "principal", "interest", "value")):
                    worksheet.set_column(i, i, width, currency_fmt)
                elif "month" in name or "year" in name:
                    worksheet.set_column(i, i, width, int_fmt)
                else:
                    worksheet.set_column(i, i, width, default_fmt)

        for sn, df in (("Schedule", df_schedule), ("Yearly", df_yearly), ("Summary", df_summary)):
            format_sheet(sn, df)

        rows = len(df_schedule)
        if rows:
            worksheet = writer.sheets["Schedule"]
            categories = ["Schedule", 1, 0, rows, 0]

            stacked = workbook.add_chart({"type": "column", "subtype": "stacked"})
            stacked.add_series({
                "name": "Principal", "categories": categories,
                "values": ["Schedule", 1, 2, rows, 2], "fill": {"color": "#4472C4"},
            })
            stacked.add_series({
                "name": "Interest", "categories": categories,
                "values": ["Schedule", 1, 3, rows, 3], "fill": {"color": "#ED7D31"},
            })
            stacked.set_title({"name": "Payment Composition (Stacked)"})
            stacked.set_x_axis({"name": "Month"})
            stacked.set_y_axis({"name": "Amount (USD)"})
            worksheet.insert_chart(1, 6, stacked, {"x_scale": 1.6, "y_scale": 1.2})

            line = workbook.add_chart({"type": "line"})
            line.add_series({
                "name": "Remaining Balance", "categories": categories,
                "values": ["Schedule", 1, 4, rows, 4], "line": {"color": "#70AD47"},
            })
            line.set_title({"name": "Remaining Balance Over Time"})
            line.set_x_axis({"name": "Month"})
            line.set_y_axis({"name": "Amount (USD)"})
            line.set_legend({"none": True})
            worksheet.insert_chart(20, 6, line, {"x_scale": 1.6, "y_scale": 1.2})

    buffer.seek(0)
    return buffer.read()

# -----------------------
# PDF Exporter
# -----------------------

def _money(value) -> str:
    return f"${float(value):,.2f}"

def export_pdf_bytes(result: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> Optional[bytes]:
    """Landscape A4 report: title, summary lines, then the schedule table."""
    if not result:
        return None

    page_size = landscape(A4)
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=page_size,
        leftMargin=40, rightMargin=40, topMargin=40, bottomMargin=40,
        title="Car Loan Amortization Schedule",
    )
    styles = getSampleStyleSheet()
    generated = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")

    story = [
        Paragraph("Car Loan Amortization Schedule", styles["Title"]),
        Paragraph(f"Generated: {generated}", styles["Normal"]),
        Spacer(1, 12),
    ]
    for key, label in SUMMARY_LABELS:
        story.append(Paragraph(f"{label}: {_money(result.get(key, 0.0))}", styles["Normal"]))
    story.append(Spacer(1, 12))

    data = [[SCHEDULE_HEADERS[c] for c in SCHEDULE_COLUMNS]]
    for row in result.get("schedule") or []:
        data.append([str(row["month"])] + [_money(row[c]) for c in SCHEDULE_COLUMNS[1:]])

    table = Table(data, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.Color(31 / 255, 41 / 255, 55 / 255)),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
    ]))
    story.append(table)

    def page_number(canvas, doc_):
        canvas.saveState()
        canvas.setFont("Helvetica", 9)
        canvas.drawRightString(page_size[0] - 40, 20, f"Page {doc_.page}")
        canvas.restoreState()

    doc.build(story, onFirstPage=page_number, onLaterPages=page_number)
    return buffer.getvalue()
