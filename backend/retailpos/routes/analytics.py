# Overview: Flask API routes for analytics; parses input and returns JSON responses.

# backend/retailpos/routes/analytics.py
"""
Analytics routes (VIEW_REPORTS).

- GET /api/analytics/sales?start=&end=    completed-sale analytics (default last 30 days)
- GET /api/analytics/products?limit=      lifetime product performance and stock health
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..services import reporting_service
from ..services.reporting_service import ReportError


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@analytics_bp.get("/sales")
@require_auth
@require_permission("VIEW_REPORTS")
def sales_analytics_route():
    try:
        report = reporting_service.sales_analytics(
            tenant_id=g.tenant_id,
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except ReportError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    return jsonify(report), 200


@analytics_bp.get("/products")
@require_auth
@require_permission("VIEW_REPORTS")
def product_performance_route():
    report = reporting_service.product_performance(
        tenant_id=g.tenant_id,
        limit=request.args.get("limit", type=int),
    )
    return jsonify(report), 200
