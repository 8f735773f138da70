from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response

try:
    from ..auth import get_requester_id
    from ..db import db_conn
    from ..errors import FamilyTreeError
    from ..serialize import _forest_to_public
    from ..service import export_forest, load_forest, parse_export_request
    from .families import _http_error
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from auth import get_requester_id
    from db import db_conn
    from errors import FamilyTreeError
    from serialize import _forest_to_public
    from service import export_forest, load_forest, parse_export_request
    from routes.families import _http_error

log = logging.getLogger(__name__)

router = APIRouter(prefix="/export", tags=["export"])


@router.get("/folder-tree-data")
def folder_tree_data(
    scope: str = Query(default="all-families"),
    family_id: list[str] | None = Query(default=None),
    requester_id: str = Depends(get_requester_id),
) -> dict[str, Any]:
    """Every visible family's forest plus the deduplicated member list."""

    with db_conn() as conn:
        try:
            forest = load_forest(conn, requester_id, scope, family_id)
        except FamilyTreeError as exc:
            raise _http_error(exc) from exc
    return _forest_to_public(forest)


@router.post("/family-data")
def export_family_data(
    payload: dict[str, Any] = Body(...),
    requester_id: str = Depends(get_requester_id),
) -> Response:
    """Render a narrative or tabular export as a downloadable file.

    The request is validated before the database is touched, so a bad
    ``format``, ``scope`` or structure is a 400 with no work done.
    """

    try:
        parse_export_request(payload)
    except FamilyTreeError as exc:
        raise _http_error(exc) from exc

    with db_conn() as conn:
        try:
            artifact = export_forest(conn, requester_id, payload)
        except FamilyTreeError as exc:
            raise _http_error(exc) from exc

    if not artifact.body:
        raise HTTPException(status_code=500, detail="export produced no output")

    log.info("export %s for requester %s", artifact.filename, requester_id)
    return Response(
        content=artifact.body,
        media_type=artifact.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{artifact.filename}"',
            "Access-Control-Expose-Headers": "Content-Disposition",
        },
    )
