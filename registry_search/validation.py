"""
Request validation for the query routes.

Each validator is a pure function of the incoming request: it returns the
typed, well-formed parameter or raises HTTPException with a short message
and the client-error status. Nothing here touches the entity store.
"""
from fastapi import HTTPException, Request, status

MAX_TOP_PROVIDERS_LIMIT = 500


def _require_get(request: Request) -> None:
    if request.method != "GET":
        raise HTTPException(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail="Method Not Allowed",
        )


def validate_search_request(request: Request) -> str:
    """Return the non-empty `q` parameter."""
    _require_get(request)

    query = request.query_params.get("q")
    if not query:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Query parameter "q" is required',
        )
    return query


def validate_top_providers_request(
    request: Request,
    max_limit: int = MAX_TOP_PROVIDERS_LIMIT,
) -> int:
    """Return `limit` as an int in 1..max_limit."""
    _require_get(request)

    raw = request.query_params.get("limit")
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Query parameter "limit" is required',
        )

    try:
        limit = int(raw)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Query parameter "limit" must be an integer',
        )

    if limit <= 0 or limit > max_limit:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Query parameter "limit" must be between 1 and {max_limit}',
        )
    return limit
