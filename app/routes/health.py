# app/routes/health.py
"""
Health check endpoints: liveness and readiness (storage backends, seed file).
"""

import time

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "outbound-mail-workspace"}


async def _check_store(store) -> dict:
    t0 = time.time()
    try:
        ok = await store.ping()
        return {"ok": bool(ok), "latency_ms": round((time.time() - t0) * 1000, 1)}
    except Exception as e:
        return {"ok": False, "error": f"{type(e).__name__}: {e}"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check for the storage backends and the seed data file.
    """
    state = request.app.state
    checks = {}

    # 1) Storage backends
    checks["local_store"] = await _check_store(state.local_store)
    checks["session_store"] = await _check_store(state.session_store)
    checks["local_store"]["backend"] = state.settings.get_storage_config()["backend"]

    # 2) Seed data file
    seed_path = state.seed_loader.path
    checks["seed_data"] = {"ok": seed_path.is_file(), "path": str(seed_path)}

    # 3) PDF directory
    pdf_base_path = state.pdf_base_path
    checks["pdf_directory"] = {"ok": pdf_base_path.is_dir(), "path": str(pdf_base_path)}

    overall_ok = all(check["ok"] for check in checks.values())
    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
