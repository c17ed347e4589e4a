"""JSON API for driving decompositions over HTTP.

Single project: the app is bound to one ``.decomposer/`` directory at
creation time. Handlers are async but do synchronous SQLite I/O on the
event loop thread, which serializes access to the shared connection.

Usage:
    decomposer serve                 # http://127.0.0.1:8378/api/...
    decomposer serve --port 9000
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import Request
from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from fastapi import APIRouter

from decomposer.cache import TtlCache
from decomposer.core import DB_FILENAME, WorkItemDB, load_rules, read_config
from decomposer.hierarchy import WorkItemNode
from decomposer.identity import ConfigIdentityProvider, Identity
from decomposer.materialize import MaterializationEngine
from decomposer.rules import RuleViolation
from decomposer.session import DecompositionSession
from decomposer.settings import DecomposerSettings, SettingsStore
from decomposer.store import LocalWorkItemStore
from decomposer.text_format import FormatError, TextHierarchyParser
from decomposer.validation import sanitize_actor

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8378

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    logger.warning("API error [%s] %s: %s", status_code, code, message)
    return JSONResponse(
        {"error": {"message": message, "code": code, "details": details or {}}},
        status_code=status_code,
    )


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON object body, returning 400 on failure."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _error_response("Invalid JSON body", "VALIDATION_ERROR", 400)
    if not isinstance(body, dict):
        return _error_response("Request body must be a JSON object", "VALIDATION_ERROR", 400)
    return body


def _format_error_response(exc: FormatError) -> JSONResponse:
    return _error_response(
        str(exc),
        "FORMAT_ERROR",
        400,
        {
            "line_number": exc.line_number,
            "issues": [{"line_number": i.line_number, "line": i.line, "error": i.error} for i in exc.issues],
        },
    )


# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------


def create_router(decomposer_dir: Path, db: WorkItemDB, *, actor: str = "api") -> APIRouter:
    """Build the APIRouter for work item, settings and decomposition endpoints."""
    from fastapi import APIRouter

    router = APIRouter()
    settings_store = SettingsStore(decomposer_dir)
    users_cache: TtlCache[dict[str, Identity]] = TtlCache()
    in_flight: set[int] = set()

    @router.get("/rules")
    async def api_rules() -> JSONResponse:
        rules = load_rules(decomposer_dir)
        creatable = rules.creatable_types()
        return JSONResponse(
            {
                "rules": rules.to_dict(),
                "creatable_types": {
                    "root": list(creatable.root),
                    "child": list(creatable.child),
                    "all": list(creatable.all),
                },
            }
        )

    @router.get("/settings")
    async def api_get_settings() -> JSONResponse:
        return JSONResponse(settings_store.get_settings().to_dict())

    @router.put("/settings")
    async def api_put_settings(request: Request) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        try:
            new_settings = DecomposerSettings.from_dict(body)
        except (ValueError, TypeError, AttributeError) as e:
            return _error_response(str(e), "VALIDATION_ERROR", 400)
        settings_store.save_settings(new_settings)
        return JSONResponse(new_settings.to_dict())

    @router.get("/items")
    async def api_items(
        type: str | None = None,
        parent: int | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> JSONResponse:
        if limit < 1 or offset < 0:
            return _error_response("limit must be >= 1 and offset >= 0", "VALIDATION_ERROR", 400)
        items = db.list_items(type=type, parent_id=parent, limit=limit, offset=offset)
        return JSONResponse([i.to_dict() for i in items])

    @router.get("/items/{item_id}")
    async def api_item_detail(item_id: int) -> JSONResponse:
        try:
            item = db.get_item(item_id)
        except KeyError:
            return _error_response(f"Work item not found: {item_id}", "NOT_FOUND", 404)
        return JSONResponse({**item.to_dict(), "comments": db.get_comments(item_id)})

    @router.get("/format-template")
    async def api_format_template(parent_type: str | None = None) -> JSONResponse:
        rules = load_rules(decomposer_dir)
        if parent_type is not None:
            canonical = rules.canonical_type(parent_type)
            if canonical is None:
                return _error_response(f"Unknown work item type: {parent_type}", "INVALID_TYPE", 400)
            parent_type = canonical
        parser = TextHierarchyParser(rules)
        template = parser.generate_format_template(parent_type)
        return JSONResponse(
            {
                "pattern": template.pattern,
                "description": template.description,
                "example": template.example,
                "reference": [{"code": r.code, "description": r.description} for r in parser.format_reference()],
                "examples": [
                    {"parent_type": e.parent_type, "example": e.example}
                    for e in parser.generate_decomposition_examples()
                ],
            }
        )

    @router.post("/parse")
    async def api_parse(request: Request) -> JSONResponse:
        """Parse hierarchy text without creating anything."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        text = body.get("text")
        if not isinstance(text, str):
            return _error_response("text must be a string", "VALIDATION_ERROR", 400)
        parent_type = body.get("parent_type")
        if parent_type is not None and not isinstance(parent_type, str):
            return _error_response("parent_type must be a string", "VALIDATION_ERROR", 400)
        result = TextHierarchyParser(load_rules(decomposer_dir)).parse_text(text, parent_type=parent_type)
        return JSONResponse(
            {
                "success": result.success,
                "nodes": [n.to_dict() for n in result.nodes],
                "issues": [{"line_number": i.line_number, "line": i.line, "error": i.error} for i in result.issues],
            }
        )

    @router.post("/decompose")
    async def api_decompose(request: Request) -> JSONResponse:
        """Create a hierarchy under ``item_id`` from ``text`` or a ``nodes`` tree."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        item_id = body.get("item_id")
        if not isinstance(item_id, int) or isinstance(item_id, bool):
            return _error_response("item_id must be an integer", "VALIDATION_ERROR", 400)
        text = body.get("text")
        raw_nodes = body.get("nodes")
        if (text is None) == (raw_nodes is None):
            return _error_response("Provide exactly one of 'text' or 'nodes'", "VALIDATION_ERROR", 400)
        if text is not None and not isinstance(text, str):
            return _error_response("text must be a string", "VALIDATION_ERROR", 400)
        if raw_nodes is not None and not isinstance(raw_nodes, list):
            return _error_response("nodes must be a list", "VALIDATION_ERROR", 400)
        acting = actor
        if "actor" in body:
            acting, err = sanitize_actor(body["actor"])
            if err:
                return _error_response(err, "VALIDATION_ERROR", 400)

        if item_id in in_flight:
            return _error_response(f"A decomposition of {item_id} is already in progress", "CONFLICT", 409)

        store = LocalWorkItemStore(db, actor=acting)
        engine = MaterializationEngine(
            store,
            settings_store,
            ConfigIdentityProvider(decomposer_dir, acting, cache=users_cache),
        )
        project = read_config(decomposer_dir).get("project", db.project)
        in_flight.add(item_id)
        try:
            try:
                session = await DecompositionSession.open(store, load_rules(decomposer_dir), engine, item_id, project)
            except KeyError:
                return _error_response(f"Work item not found: {item_id}", "NOT_FOUND", 404)
            try:
                if text is not None:
                    session.import_text(text)
                else:
                    session.manager.import_nodes([WorkItemNode.from_dict(n) for n in raw_nodes or []])
            except FormatError as e:
                return _format_error_response(e)
            except RuleViolation as e:
                return _error_response(str(e), "RULE_VIOLATION", 400, {"node_id": e.node_id, "type": e.type_name})
            except ValueError as e:
                return _error_response(str(e), "VALIDATION_ERROR", 400)
            result = await session.save()
        finally:
            in_flight.discard(item_id)

        if result.precondition_failed:
            return _error_response(result.errors[0], "PRECONDITION_FAILED", 400)
        return JSONResponse(result.to_dict())

    return router


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(decomposer_dir: Path, *, actor: str = "api", db: WorkItemDB | None = None) -> Any:
    """Create the FastAPI application bound to *decomposer_dir*.

    When *db* is omitted a connection usable from the server thread is opened.
    """
    from fastapi import FastAPI

    if db is None:
        config = read_config(decomposer_dir)
        db = WorkItemDB(
            decomposer_dir / DB_FILENAME,
            project=config.get("project", decomposer_dir.resolve().parent.name),
            check_same_thread=False,
        )
        db.initialize()

    app = FastAPI(title="Decomposer API", docs_url=None, redoc_url=None)
    app.include_router(create_router(decomposer_dir, db, actor=actor), prefix="/api")
    app.state.db = db
    return app


def main(decomposer_dir: Path, *, actor: str = "api", host: str = "127.0.0.1", port: int = DEFAULT_PORT) -> None:
    """Start the API server."""
    import uvicorn

    from decomposer.logging import setup_logging

    setup_logging(decomposer_dir)
    app = create_app(decomposer_dir, actor=actor)
    print(f"Decomposer API: http://{host}:{port}/api")
    try:
        uvicorn.run(app, host=host, port=port, log_level="warning")
    finally:
        app.state.db.close()
