# api_server.py
import io
import os
import sys
import json
import logging

from dotenv import load_dotenv
from flask import Flask, request, jsonify, send_file

from amortization_engine import AmortizationEngine, process_request, held_result, _to_int
from loan_exports import export_csv_text, export_excel_bytes, export_pdf_bytes, export_filename

load_dotenv()

# --- Configuration ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "5000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
MAX_TERM_MONTHS = int(os.getenv("MAX_TERM_MONTHS", "0"))  # 0 = no cap

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class RequestError(Exception):
    """The request body could not be read; distinct from a calculation failure."""


def _read_payload() -> dict:
    """JSON body when declared as JSON, form fields otherwise."""
    if request.is_json:
        if not request.get_data():
            return {}
        payload = request.get_json(silent=True)
        if payload is None:
            raise RequestError("Malformed JSON body.")
        if not isinstance(payload, dict):
            raise RequestError("JSON body must be an object.")
        return payload
    return request.form.to_dict()


def _apply_term_cap(data: dict, max_term_months: int) -> dict:
    if max_term_months and _to_int(data.get("months", 0)) > max_term_months:
        data = dict(data, months=max_term_months)
    return data


def create_app(max_term_months: int = MAX_TERM_MONTHS) -> Flask:
    app = Flask(__name__)
    engine = AmortizationEngine()

    @app.errorhandler(RequestError)
    def handle_request_error(e):
        logger.info("Rejected request: %s", e)
        return jsonify({"error": str(e)}), 400

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    @app.route("/calculate", methods=["POST"])
    def calculate():
        """Amortization schedule for loanAmount / months / interestRate."""
        data = _apply_term_cap(_read_payload(), max_term_months)
        logger.debug("calculate: %s", data)
        try:
            result = engine.calculate_from_request(data)
        except Exception as e:
            logger.exception("Server calculation error")
            return jsonify({"error": f"Server calculation error: {str(e)}"}), 500
        return jsonify(result)

    @app.route("/process", methods=["POST"])
    def process():
        """Script-routed calls: {"script": ..., "data": {...}}."""
        payload = _read_payload()
        script = payload.get("script", "")
        data_dict = payload.get("data") or {}
        if not isinstance(data_dict, dict):
            raise RequestError("'data' must be an object.")
        data_dict = _apply_term_cap(data_dict, max_term_months)

        response_dict = json.loads(process_request(script, data_dict))
        status = 500 if str(response_dict.get("error", "")).startswith("Engine error") else 200
        return jsonify(response_dict), status

    def _export_result():
        payload = _apply_term_cap(_read_payload(), max_term_months)
        held = held_result(payload)
        if held is not None:
            return held
        if any(k in payload for k in ("loanAmount", "months", "interestRate")):
            return engine.calculate_from_request(payload)
        return None

    @app.route("/export/csv", methods=["POST"])
    def export_csv():
        text = export_csv_text(_export_result())
        if text is None:
            # nothing calculated yet; ignored rather than an error
            return "", 204
        buf = io.BytesIO(text.encode("utf-8"))
        return send_file(buf, as_attachment=True, download_name=export_filename("csv"), mimetype="text/csv")

    @app.route("/export/xlsx", methods=["POST"])
    def export_xlsx():
        data = export_excel_bytes(_export_result())
        if data is None:
            return "", 204
        return send_file(io.BytesIO(data), as_attachment=True, download_name=export_filename("xlsx"), mimetype=XLSX_MIMETYPE)

    @app.route("/export/pdf", methods=["POST"])
    def export_pdf():
        data = export_pdf_bytes(_export_result())
        if data is None:
            return "", 204
        return send_file(io.BytesIO(data), as_attachment=True, download_name=export_filename("pdf"), mimetype="application/pdf")

    return app


# Gunicorn runs the 'app' variable directly.
app = create_app()

if __name__ == "__main__":
    app.run(host=HOST, port=PORT)
