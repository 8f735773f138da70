from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

try:
    from ..auth import get_requester_id
    from ..db import db_conn
    from ..errors import AccessDenied, FamilyTreeError, NotFound, UnsupportedFormat
    from ..serialize import _family_forest_to_public
    from ..service import family_statistics, family_tree
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from auth import get_requester_id
    from db import db_conn
    from errors import AccessDenied, FamilyTreeError, NotFound, UnsupportedFormat
    from serialize import _family_forest_to_public
    from service import family_statistics, family_tree

router = APIRouter()


def _http_error(exc: FamilyTreeError) -> HTTPException:
    if isinstance(exc, AccessDenied):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, UnsupportedFormat):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@router.get("/families/{family_id}/tree")
def get_family_tree(family_id: str, requester_id: str = Depends(get_requester_id)) -> dict[str, Any]:
    """Normalized tree for one family, as consumed by the tree renderers.

    403 when the requester cannot see the family, 404 when it does not exist.
    """

    with db_conn() as conn:
        try:
            ff = family_tree(conn, requester_id, family_id)
        except FamilyTreeError as exc:
            raise _http_error(exc) from exc

    return _family_forest_to_public(ff)


@router.get("/families/{family_id}/statistics")
def get_family_statistics(family_id: str, requester_id: str = Depends(get_requester_id)) -> dict[str, Any]:
    with db_conn() as conn:
        try:
            return family_statistics(conn, requester_id, family_id)
        except FamilyTreeError as exc:
            raise _http_error(exc) from exc
