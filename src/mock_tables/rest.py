"""REST routes backed by a model's table.

``generate_rest_handlers`` builds a FastAPI ``APIRouter`` serving one model;
``install_error_handlers`` turns store failures into status codes on the
application the router is mounted on.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import inflection
from fastapi import APIRouter, Body, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from mock_tables.errors import (
    HTTPError,
    HTTPErrorType,
    OperationError,
    OperationErrorType,
)
from mock_tables.projection import remove_internal_properties
from mock_tables.query import Query

if TYPE_CHECKING:
    from mock_tables.database import Database

logger = logging.getLogger(__name__)

# Query-string keys that control pagination rather than filtering
PAGINATION_KEYS = ("cursor", "skip", "take")

STATUS_BY_ERROR_TYPE = {
    OperationErrorType.ENTITY_NOT_FOUND: 404,
    OperationErrorType.DUPLICATE_PRIMARY_KEY: 409,
    HTTPErrorType.BAD_REQUEST: 400,
}


def pluralize(name: str) -> str:
    """Return the English plural of a model name."""
    return inflection.pluralize(name)


def get_route_prefix(base_url: str | None = None) -> str:
    """Return the path routes are mounted under for ``base_url``.

    ``"http://localhost:3000/api/"`` mounts routes under ``/api``; no base
    URL mounts them at the root.
    """
    if not base_url:
        return ""
    path = urlsplit(base_url).path.rstrip("/")
    if path and not path.startswith("/"):
        path = "/" + path
    return path


def get_response_status_by_error_type(error: Exception) -> int:
    """Map a failure to the status code of its response."""
    if isinstance(error, OperationError):
        return STATUS_BY_ERROR_TYPE.get(error.type, 500)
    return 500


async def handle_operation_error(request: Request, error: OperationError) -> JSONResponse:
    """Answer a store failure with its status code and message."""
    status = get_response_status_by_error_type(error)
    if status == 500:
        logger.error("%s %s failed", request.method, request.url.path, exc_info=error)
    else:
        logger.debug("%s %s answered %d: %s", request.method, request.url.path, status, error)
    return JSONResponse(status_code=status, content={"message": str(error)})


def install_error_handlers(app: FastAPI) -> FastAPI:
    """Register the store's error handler on ``app``."""
    app.add_exception_handler(OperationError, handle_operation_error)
    return app


def create_app(database: Database, base_url: str = "") -> FastAPI:
    """Build an application serving every model of ``database``."""
    app = FastAPI(title="mock-tables")
    for model_name in database.list_models():
        app.include_router(generate_rest_handlers(database, model_name, base_url))
    return install_error_handlers(app)


def get_filters(
    model_name: str, schema: dict[str, Any], query: list[tuple[str, str]]
) -> dict[str, Any]:
    """Translate query-string parameters into ``equals`` predicates.

    Raises:
        HTTPError: If a parameter names a property the model does not declare.
    """
    filters: dict[str, Any] = {}
    for key, value in query:
        if key in PAGINATION_KEYS:
            continue
        if key not in schema:
            raise HTTPError(
                HTTPErrorType.BAD_REQUEST,
                f'Failed to query the "{model_name}" model: unknown property "{key}".',
            )
        filters[key] = {"equals": value}
    return filters


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _render(entity: dict[str, Any] | None) -> Any:
    return jsonable_encoder(remove_internal_properties(entity))


def generate_rest_handlers(database: Database, model_name: str, base_url: str = "") -> APIRouter:
    """Generate list/get/create/replace/delete routes for a model.

    Args:
        database: The database owning the model's table.
        model_name: The model to serve.
        base_url: Optional URL whose path the routes are mounted under.

    Failures surface as ``OperationError``; mount the router on an
    application prepared with :func:`install_error_handlers`.
    """
    table = database.table(model_name)
    schema = table.schema
    primary_key = table.primary_key
    model_path = f"/{pluralize(model_name)}"
    item_path = f"{model_path}/{{{primary_key}}}"
    router = APIRouter(prefix=get_route_prefix(base_url), tags=[model_name])

    def by_primary_key(request: Request) -> Query:
        return Query(where={primary_key: {"equals": request.path_params[primary_key]}})

    @router.get(model_path, name=f"list_{model_name}")
    def list_entities(request: Request) -> Any:
        params = request.query_params
        cursor = params.get("cursor")
        skip = _parse_int(params.get("skip") or "0")
        take = _parse_int(params.get("take"))

        query = Query(where=get_filters(model_name, schema, params.multi_items()))
        if take and skip is not None:
            query.take, query.skip = take, skip
        if take and cursor:
            query.take, query.cursor = take, cursor

        return [_render(record) for record in table.find_many(query)]

    @router.get(item_path, name=f"get_{model_name}")
    def get_entity(request: Request) -> Any:
        return _render(table.find_first(by_primary_key(request), strict=True))

    @router.post(model_path, status_code=201, name=f"create_{model_name}")
    def create_entity(body: dict[str, Any] | None = Body(default=None)) -> Any:
        return _render(table.create(body))

    @router.put(item_path, name=f"replace_{model_name}")
    def replace_entity(request: Request, body: dict[str, Any] | None = Body(default=None)) -> Any:
        return _render(table.update(by_primary_key(request), body or {}, strict=True))

    @router.delete(item_path, name=f"delete_{model_name}")
    def delete_entity(request: Request) -> Any:
        return _render(table.delete(by_primary_key(request), strict=True))

    return router
