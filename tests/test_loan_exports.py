import io
import zipfile
from datetime import datetime

from amortization_engine import calculate_amortization
from loan_exports import (
    chart_series,
    yearly_schedule,
    export_csv_text,
    export_excel_bytes,
    export_pdf_bytes,
    export_filename,
)


def test_chart_series_columns():
    res = calculate_amortization(3000, 3, 0)
    series = chart_series(res)
    assert series == {
        "labels": [1, 2, 3],
        "principal": [1000.0, 1000.0, 1000.0],
        "interest": [0.0, 0.0, 0.0],
        "balance": [2000.0, 1000.0, 0.0],
    }


def test_yearly_schedule_groups_by_twelve_months():
    res = calculate_amortization(24000, 30, 0)
    years = yearly_schedule(res)
    assert [y["year"] for y in years] == [1, 2, 3]
    assert years[0]["principal"] == 9600.0
    assert years[0]["balance"] == 14400.0
    assert years[2]["principal"] == 4800.0
    assert years[2]["balance"] == 0.0


def test_yearly_schedule_empty():
    assert yearly_schedule({"schedule": []}) == []


def test_csv_layout():
    res = calculate_amortization(2000, 2, 0)
    text = export_csv_text(res)
    assert text.splitlines() == [
        "Month,Payment,Principal,Interest,Remaining Balance",
        "1,1000.00,1000.00,0.00,1000.00",
        "2,1000.00,1000.00,0.00,0.00",
        "",
        "Monthly Payment,1000.00",
        "Total Interest,0.00",
        "Total Cost,2000.00",
    ]


def test_exports_without_result_are_ignored():
    assert export_csv_text(None) is None
    assert export_excel_bytes(None) is None
    assert export_csv_text({}) is None


def test_excel_workbook_sheets():
    res = calculate_amortization(25000, 60, 6.49)
    data = export_excel_bytes(res)
    assert data[:2] == b"PK"
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        workbook_xml = zf.read("xl/workbook.xml").decode("utf-8")
        names = zf.namelist()
    for sheet in ("Schedule", "Yearly", "Summary"):
        assert f'name="{sheet}"' in workbook_xml
    assert any(n.startswith("xl/charts/chart") for n in names)


def test_export_filename():
    assert export_filename("csv", datetime(2024, 3, 5, 14, 7, 9)) == "amortization-2024-03-05-14-07-09.csv"


def test_pdf_report():
    res = calculate_amortization(25000, 60, 6.49)
    data = export_pdf_bytes(res, now=datetime(2024, 3, 5, 14, 7, 9))
    assert data.startswith(b"%PDF")
    assert export_pdf_bytes(None) is None
