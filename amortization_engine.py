# amortization_engine.py
# Fixed-rate loan amortization: level payment, monthly schedule, request router.

import json
import math
import re
import base64
import logging
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Dict, List, Any

from loan_exports import (
    chart_series,
    yearly_schedule,
    export_csv_text,
    export_excel_bytes,
    export_pdf_bytes,
    export_filename,
)

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")

# -----------------------
# Helpers
# -----------------------

def _to_float(val) -> float:
    """Coerce a raw request value to a finite float; anything unreadable is 0."""
    if val is None:
        return 0.0
    try:
        v = float(val)
    except OverflowError:
        return 0.0
    except (TypeError, ValueError):
        # "12abc" reads as 12, like a form field would
        match = _LEADING_NUMBER.match(str(val))
        if not match:
            return 0.0
        v = float(match.group(0))
    if not math.isfinite(v):
        return 0.0
    return v

def _to_int(val) -> int:
    return int(_to_float(val))

def _round2(value: float) -> float:
    # half away from zero on the shortest repr, so 1.005 -> 1.01
    if not math.isfinite(value):
        return 0.0
    with localcontext() as ctx:
        # a float needs at most ~310 integer digits
        ctx.prec = 400
        return float(Decimal(repr(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

def _level_payment(principal: float, monthly_rate: float, term_months: int) -> float:
    # 1 - (1 + r) ** -n, kept nonzero when 1 + r rounds to 1.0
    discount = -math.expm1(-term_months * math.log1p(monthly_rate))
    if monthly_rate == 0 or discount == 0:
        return principal / term_months
    return principal * monthly_rate / discount

def held_result(data: Dict[str, Any]):
    """A previously computed result sent back by the client, or None."""
    held = (data or {}).get("result")
    if isinstance(held, dict) and held.get("schedule"):
        return held
    return None

def normalize_loan_input(principal, term_months, annual_rate_pct) -> Dict[str, Any]:
    """Coerce-then-clamp: no input is rejected."""
    return {
        "principal": max(0.0, _to_float(principal)),
        "term_months": max(1, _to_int(term_months)),
        "annual_rate_pct": max(0.0, _to_float(annual_rate_pct)),
    }

# -----------------------
# Core Engine
# -----------------------

class AmortizationEngine:
    def _amortize(self, principal: float, monthly_rate: float, term_months: int, payment: float) -> Dict[str, Any]:
        schedule: List[Dict[str, Any]] = []
        balance = principal
        total_interest = 0.0

        for m in range(1, term_months + 1):
            interest = 0.0 if monthly_rate == 0 else balance * monthly_rate
            principal_paid = payment - interest
            row_payment = payment

            # Last row takes whatever balance is left so the loan closes at zero.
            if m == term_months:
                principal_paid = balance
                row_payment = principal_paid + interest

            balance -= principal_paid
            total_interest += interest

            schedule.append({
                "month": m,
                "payment": _round2(row_payment),
                "principal": _round2(principal_paid),
                "interest": _round2(interest),
                "balance": max(0.0, _round2(balance)),
            })

        return {"schedule": schedule, "total_interest": total_interest}

    def calculate_amortization(self, principal, term_months, annual_rate_pct) -> Dict[str, Any]:
        p = normalize_loan_input(principal, term_months, annual_rate_pct)
        r = (p["annual_rate_pct"] / 100.0) / 12.0
        payment = _level_payment(p["principal"], r, p["term_months"])

        run = self._amortize(p["principal"], r, p["term_months"], payment)
        total_interest = run["total_interest"]

        return {
            "monthlyPayment": _round2(payment),
            "totalInterest": _round2(total_interest),
            "totalCost": _round2(p["principal"] + total_interest),
            "schedule": run["schedule"],
        }

    def calculate_from_request(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Maps the request fields (loanAmount, months, interestRate) onto the engine."""
        data = data or {}
        return self.calculate_amortization(
            data.get("loanAmount", 0),
            data.get("months", 0),
            data.get("interestRate", 0),
        )

def calculate_amortization(principal, term_months, annual_rate_pct) -> Dict[str, Any]:
    return AmortizationEngine().calculate_amortization(principal, term_months, annual_rate_pct)

# -----------------------
# Router
# -----------------------

def _result_for(engine: AmortizationEngine, data: Dict[str, Any]) -> Dict[str, Any]:
    # Exports and charts may reuse a result the client already holds.
    return held_result(data) or engine.calculate_from_request(data)

def process_request(script: str, data: Dict[str, Any]) -> str:
    """
    Router for integration. Accepts a script name (free text) and a data dict.
    Returns a JSON string.
    """
    engine = AmortizationEngine()
    result: Dict[str, Any] = {}

    try:
        script_raw = script or ""
        script_lower = " ".join(script_raw.lower().split())
        if not isinstance(data, dict):
            data = {}

        logger.debug("process_request: script=%r normalized=%r data keys=%s",
                     script_raw, script_lower, list(data.keys()))

        if "export" in script_lower and "csv" in script_lower:
            text = export_csv_text(_result_for(engine, data))
            result = {
                "csv_base64": base64.b64encode(text.encode("utf-8")).decode("ascii"),
                "filename": export_filename("csv"),
            }

        elif "export" in script_lower and ("excel" in script_lower or "xlsx" in script_lower):
            excel_bytes = export_excel_bytes(_result_for(engine, data))
            result = {
                "excel_base64": base64.b64encode(excel_bytes).decode("ascii"),
                "filename": export_filename("xlsx"),
            }

        elif "export" in script_lower and "pdf" in script_lower:
            pdf_bytes = export_pdf_bytes(_result_for(engine, data))
            result = {
                "pdf_base64": base64.b64encode(pdf_bytes).decode("ascii"),
                "filename": export_filename("pdf"),
            }

        elif "chart" in script_lower:
            result = chart_series(_result_for(engine, data))

        elif "yearly" in script_lower:
            result = {"yearly_schedule": yearly_schedule(_result_for(engine, data))}

        elif any(k in script_lower for k in ("amortization", "amortisation", "calculate", "car loan", "loan", "schedule")):
            result = engine.calculate_from_request(data)

        else:
            result = {"error": "Unknown script name.", "received_script": script_raw, "normalized_script": script_lower}

    except Exception as e:
        logger.exception("process_request failed for script %r", script)
        result = {"error": f"Engine error: {str(e)}", "received_script": script}

    return json.dumps(result)
