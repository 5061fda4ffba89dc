# Overview: Health endpoint reporting database and session-store status.

# backend/retailpos/routes/system.py
"""
System health endpoint.

Each probe is timed separately so a slow table shows up in the payload.
Returns 503 when any probe fails, which is what load balancers watch.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, Sale, SessionToken, Tenant
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _timed_probe(label: str, probe) -> dict:
    started = time.perf_counter()
    try:
        details = probe()
    except Exception:
        current_app.logger.exception("Health probe failed: %s", label)
        return {
            "status": "unhealthy",
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            "error": f"{label} unavailable",
        }
    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "details": details,
    }


def _catalogue_counts() -> dict:
    return {
        "tenants": db.session.query(Tenant).count(),
        "products": db.session.query(Product).count(),
        "sales": db.session.query(Sale).count(),
    }


def _session_counts() -> dict:
    now = utcnow()
    open_sessions = db.session.query(SessionToken).filter(SessionToken.is_revoked.is_(False))
    return {
        "active_sessions": open_sessions.filter(SessionToken.expires_at >= now).count(),
        "expired_pending_cleanup": open_sessions.filter(SessionToken.expires_at < now).count(),
    }


@system_bp.get("/health")
def health():
    """200 when every probe passes, 503 otherwise."""
    checks = {
        "database": _timed_probe("database", _catalogue_counts),
        "session_service": _timed_probe("session store", _session_counts),
    }
    healthy = all(check["status"] == "healthy" for check in checks.values())
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "checks": checks,
    }
    return body, 200 if healthy else 503
