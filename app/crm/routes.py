from flask import Blueprint, g, request

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return {
        "service": "teamcrm",
        "authenticated": getattr(g, "auth", None) is not None,
    }


@bp.get("/login")
def login():
    """Landing spot after a failed or missing login; the client renders the page."""
    return {
        "loginUrl": "/auth/facebook",
        "error": request.args.get("error"),
    }


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast liveness check. No DB access.
    """
    return "ok", 200
