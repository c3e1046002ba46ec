#!/usr/bin/env python3
"""
ProjectHub Data Server
----------------------
Serves the local SQLite backend over the same REST surface the ProjectHub
REST client talks to, so the bot (or any client) can run against a local
stand-in for the hosted data service.

Usage:
    export PROJECTHUB_API_KEY=some-long-random-string
    python hub_server.py --db ~/.local/share/projecthub/projecthub.db

API (every request needs the `apikey` header):
    POST   /auth/v1/signup                     { email, password } → session
    POST   /auth/v1/token?grant_type=password  { email, password } → session
    POST   /auth/v1/logout                     (bearer token)
    GET    /auth/v1/user                       (bearer token) → { id, email }

    GET    /rest/v1/<table>?col=eq.v&order=col.asc    → [rows]
    POST   /rest/v1/<table>            body: row       → [row]
    PATCH  /rest/v1/<table>?id=eq.<id> body: fields    → [row] | []
    DELETE /rest/v1/<table>?id=eq.<id>                 → [row] | []

    GET    /health

Data routes also need `Authorization: Bearer <access_token>`; every row
read or written is scoped to that user.

Dependencies: flask
    pip install flask
"""

import hmac
import os
from functools import wraps
from pathlib import Path

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from pkg.projecthub.auth import AuthError, LocalAuthProvider
from pkg.projecthub.client import (
    FILTER_OPS,
    DataServiceError,
    Filter,
    NotFoundError,
    Order,
    QueryError,
    TransportError,
)
from pkg.projecthub.store import SqliteDataService

DEFAULT_DB = Path.home() / ".local" / "share" / "projecthub" / "projecthub.db"

app = Flask(__name__)
app.config["DB_PATH"] = os.environ.get("PROJECTHUB_DB", str(DEFAULT_DB))
app.config["API_KEY"] = os.environ.get("PROJECTHUB_API_KEY", "")


# ── Backends ─────────────────────────────────────────────────────────────────

def get_auth() -> LocalAuthProvider:
    return LocalAuthProvider(app.config["DB_PATH"])


def get_store() -> SqliteDataService:
    """Data service scoped to the request's user."""
    return SqliteDataService(app.config["DB_PATH"], owner_id=g.user.id)


# ── Auth ─────────────────────────────────────────────────────────────────────

def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def require_api_key(f):
    """Decorator: reject requests without a valid `apikey` header."""
    @wraps(f)
    def decorated(*args, **kwargs):
        api_key = app.config["API_KEY"]
        if not api_key:
            return jsonify({"message": "PROJECTHUB_API_KEY not set"}), 503
        provided = request.headers.get("apikey", "").strip()
        if not hmac.compare_digest(provided, api_key):
            code = 401 if not provided else 403
            return jsonify({"message": "Invalid API key"}), code
        return f(*args, **kwargs)
    return decorated


def require_user(f):
    """Decorator: resolve the bearer token to a user (g.user) or reject."""
    @wraps(f)
    def decorated(*args, **kwargs):
        user = get_auth().user_for_token(_bearer_token())
        if user is None:
            return jsonify({"message": "Invalid or missing access token"}), 401
        g.user = user
        return f(*args, **kwargs)
    return decorated


def _session_payload(grant) -> dict:
    return {
        "access_token": grant.access_token,
        "token_type": "bearer",
        "user": {"id": grant.user.id, "email": grant.user.email},
    }


# ── Errors ───────────────────────────────────────────────────────────────────

@app.errorhandler(DataServiceError)
def handle_data_error(e):
    if isinstance(e, NotFoundError):
        code = 404
    elif isinstance(e, TransportError):
        code = 503
    else:
        code = 400
    return jsonify({"message": str(e), "kind": e.kind.value}), code


@app.errorhandler(AuthError)
def handle_auth_error(e):
    return jsonify({"error_description": str(e)}), 400


@app.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return jsonify({"message": e.description}), e.code
    app.logger.exception(f"Unhandled error on {request.method} {request.path}")
    return jsonify({"message": str(e)}), 500


# ── Query parsing ────────────────────────────────────────────────────────────

def parse_filters(args) -> list:
    """`col=eq.value` / `col=neq.value` query args → Filters."""
    filters = []
    for column, raw in args.items(multi=True):
        if column in ("select", "order"):
            continue
        op, sep, value = raw.partition(".")
        if not sep or op not in FILTER_OPS:
            raise QueryError(f"Unsupported filter {column}={raw}")
        filters.append(Filter(column, op, None if value == "null" else value))
    return filters


def parse_order(args):
    raw = args.get("order")
    if not raw:
        return None
    column, _, direction = raw.partition(".")
    if direction not in ("", "asc", "desc"):
        raise QueryError(f"Unsupported order {raw}")
    return Order(column, ascending=direction != "desc")


def _target_id(filters) -> str:
    """PATCH/DELETE must address exactly one row with id=eq.<id>."""
    ids = [f.value for f in filters if f.column == "id" and f.op == "eq"]
    if len(ids) != 1 or len(filters) != 1:
        raise QueryError("Updates and deletes must filter on id=eq.<id> only")
    return ids[0]


def _json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    if isinstance(data, list) and len(data) == 1:
        data = data[0]
    if not isinstance(data, dict):
        raise QueryError("Request body must be a JSON object")
    return data


# ── Auth routes ──────────────────────────────────────────────────────────────

@app.route("/auth/v1/signup", methods=["POST"])
@require_api_key
def auth_signup():
    data = request.get_json(force=True, silent=True) or {}
    grant = get_auth().sign_up(data.get("email", ""), data.get("password", ""))
    app.logger.info(f"Signed up {grant.user.email}")
    return jsonify(_session_payload(grant))


@app.route("/auth/v1/token", methods=["POST"])
@require_api_key
def auth_token():
    if request.args.get("grant_type") != "password":
        return jsonify({"error_description": "Unsupported grant_type"}), 400
    data = request.get_json(force=True, silent=True) or {}
    grant = get_auth().sign_in(data.get("email", ""), data.get("password", ""))
    return jsonify(_session_payload(grant))


@app.route("/auth/v1/logout", methods=["POST"])
@require_api_key
def auth_logout():
    token = _bearer_token()
    if token:
        get_auth().sign_out(token)
    return "", 204


@app.route("/auth/v1/user", methods=["GET"])
@require_api_key
@require_user
def auth_user():
    return jsonify({"id": g.user.id, "email": g.user.email})


# ── Data routes ──────────────────────────────────────────────────────────────

@app.route("/rest/v1/<table>", methods=["GET"])
@require_api_key
@require_user
def rest_select(table):
    rows = get_store().select(table, parse_filters(request.args), parse_order(request.args))
    return jsonify(rows)


@app.route("/rest/v1/<table>", methods=["POST"])
@require_api_key
@require_user
def rest_insert(table):
    row = get_store().insert(table, _json_body())
    return jsonify([row]), 201


@app.route("/rest/v1/<table>", methods=["PATCH"])
@require_api_key
@require_user
def rest_update(table):
    row_id = _target_id(parse_filters(request.args))
    store = get_store()
    try:
        store.update(table, row_id, _json_body())
    except NotFoundError:
        return jsonify([])
    return jsonify([store.select_one(table, row_id)])


@app.route("/rest/v1/<table>", methods=["DELETE"])
@require_api_key
@require_user
def rest_delete(table):
    row_id = _target_id(parse_filters(request.args))
    store = get_store()
    row = store.select_one(table, row_id)
    if row is None:
        return jsonify([])
    store.delete(table, row_id)
    return jsonify([row])


@app.route("/health")
def health():
    return jsonify({"status": "ok", "db": app.config["DB_PATH"]})


# ── Main ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import argparse
    import logging

    from pkg.projecthub.config import HubConfig

    parser = argparse.ArgumentParser(description="ProjectHub Data Server")
    parser.add_argument("--config", help="Path to projecthub.yaml")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--db", help="Path to the SQLite DB (overrides PROJECTHUB_DB)")
    args = parser.parse_args()

    cfg = HubConfig.load(args.config)
    host = args.host or cfg.server_host
    port = args.port or cfg.server_port
    app.config["DB_PATH"] = str(Path(args.db or cfg.db_path).expanduser())
    app.config["API_KEY"] = cfg.api_key or app.config["API_KEY"]

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [hub_server] %(levelname)s: %(message)s",
    )

    print(f"""
╔═══════════════════════════════════════╗
║  ProjectHub Data Server               ║
╠═══════════════════════════════════════╣
║  URL:  http://{host}:{port:<20}║
║  DB:   {str(app.config["DB_PATH"]):<31}║
║  Key:  {"set" if app.config["API_KEY"] else "MISSING":<31}║
╚═══════════════════════════════════════╝
""")

    app.run(host=host, port=port, debug=False, threaded=True)
