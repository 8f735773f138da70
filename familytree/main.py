from __future__ import annotations

import logging
import os

from fastapi import FastAPI

try:
    from .routes import export as export_routes
    from .routes import families as families_routes
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from routes import export as export_routes
    from routes import families as families_routes

logging.basicConfig(
    level=os.environ.get("FAMILYTREE_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Family Tree API", version="0.1.0")

app.include_router(families_routes.router)
app.include_router(export_routes.router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"ok": "true"}
