from flask import Blueprint, jsonify, request

from ricemill.decorators import require_auth
from ricemill.services import audit_service
from ricemill.services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _record_view(report: str, **params) -> None:
    audit_service.record_event(
        action="VIEW_REPORTS",
        resource_type="REPORT",
        details={"report": report, **{k: v for k, v in params.items() if v is not None}},
    )


@reports_bp.get("/dashboard")
@require_auth
def dashboard_report():
    report = reporting_service.dashboard()
    _record_view("dashboard")
    return jsonify(report), 200


@reports_bp.get("/stock-value")
@require_auth
def stock_value_report():
    report = reporting_service.stock_value_report()
    _record_view("stock-value")
    return jsonify(report), 200


@reports_bp.get("/movement")
@require_auth
def movement_report():
    start = request.args.get("start_date")
    end = request.args.get("end_date")
    product_id = request.args.get("product_id", type=int)

    try:
        report = reporting_service.movement_report(start=start, end=end, product_id=product_id)
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400

    _record_view("movement", start_date=start, end_date=end, product_id=product_id)
    return jsonify(report), 200


@reports_bp.get("/profit-analysis")
@require_auth
def profit_analysis_report():
    start = request.args.get("start_date")
    end = request.args.get("end_date")

    try:
        report = reporting_service.profit_analysis(start=start, end=end)
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400

    _record_view("profit-analysis", start_date=start, end_date=end)
    return jsonify(report), 200


@reports_bp.get("/bi-analytics")
@require_auth
def bi_analytics_report():
    start = request.args.get("start_date")
    end = request.args.get("end_date")

    try:
        report = reporting_service.bi_analytics(start=start, end=end)
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400

    _record_view("bi-analytics", start_date=start, end_date=end)
    return jsonify(report), 200
