"""HTTP service exposing the users grid page, its data feed and its editor."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, Tuple

import anyio
from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from .config import Settings, load_settings, load_tokens_from_env, resolve_config_path
from .datatable import UsersDataTable
from .database import Database, resolve_database_path
from .security import TokenAuth
from .users import UsersEditor

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

logger = logging.getLogger("useradmin.service")

_BRACKETS = re.compile(r"\[([^\]]*)\]")


def unflatten_form(items: Iterable[Tuple[str, str]]) -> Dict[str, object]:
    """Rebuild nested data from bracketed form keys.

    ``data[5][name]=Ada`` becomes ``{"data": {"5": {"name": "Ada"}}}``, which is
    how the editor widget encodes its submissions by default.
    """

    result: Dict[str, object] = {}
    for key, value in items:
        head, bracket, rest = key.partition("[")
        path = [head, *_BRACKETS.findall(bracket + rest)] if bracket else [head]
        node = result
        for part in path[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[path[-1]] = value
    return result


def _load_settings() -> Settings:
    settings = load_settings(resolve_config_path(os.getenv("USERADMIN_CONFIG")))
    env_tokens = load_tokens_from_env()
    if env_tokens:
        settings = replace(settings, api_tokens=tuple(env_tokens))
    return settings


def create_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    initialize_database: bool = False,
) -> FastAPI:
    """Instantiate the FastAPI application for the users grid."""

    if database is None:
        database = Database(resolve_database_path(os.getenv("USERADMIN_DB_PATH")))
        database.initialize()
    elif initialize_database:
        database.initialize()

    if settings is None:
        settings = _load_settings()

    editor = UsersEditor(database)
    table = UsersDataTable(database, page_length=settings.page_length)
    auth = TokenAuth(settings.api_tokens)
    if not auth.enabled:
        logger.warning(
            "No API tokens configured; the data and editor endpoints accept unauthenticated requests."
        )

    app = FastAPI(
        title=settings.title,
        version="0.1.0",
        description="Administrative editing of user accounts through a data grid.",
    )
    app.state.database = database
    app.state.settings = settings
    app.state.editor = editor

    if settings.static_dir is not None:
        if settings.static_dir.is_dir():
            app.mount("/static", StaticFiles(directory=str(settings.static_dir)), name="static")
        else:
            logger.warning("Static directory %s does not exist; assets will not be served", settings.static_dir)

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> RedirectResponse:
        return RedirectResponse(request.url_for("users_page"), status_code=status.HTTP_303_SEE_OTHER)

    @app.get("/users", response_class=HTMLResponse, name="users_page")
    async def users_page(request: Request):
        return templates.TemplateResponse(
            request,
            "users.html",
            {
                "title": settings.title,
                "stylesheets": settings.stylesheets,
                "scripts": settings.scripts,
                "page_length": settings.page_length,
                "data_url": str(request.url_for("users_data")),
                "editor_url": str(request.url_for("users_editor")),
            },
        )

    @app.get("/users/data", name="users_data", dependencies=[Depends(auth)])
    async def users_data(request: Request) -> JSONResponse:
        params = dict(request.query_params)
        payload = await anyio.to_thread.run_sync(table.render, params)
        return JSONResponse(payload)

    @app.post("/users/editor", name="users_editor", dependencies=[Depends(auth)])
    async def users_editor(request: Request) -> JSONResponse:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            try:
                body = await request.json()
            except ValueError:
                return JSONResponse({"data": [], "error": "Request body is not valid JSON"})
            if not isinstance(body, dict):
                return JSONResponse({"data": [], "error": "Request body must be a JSON object"})
        else:
            form = await request.form()
            body = unflatten_form((key, str(value)) for key, value in form.multi_items())

        result = await anyio.to_thread.run_sync(editor.process, body)
        return JSONResponse(result)

    return app


__all__ = ["create_app", "unflatten_form"]
