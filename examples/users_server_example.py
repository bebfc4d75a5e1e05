#!/usr/bin/env python3
"""
Users API Example for restprimer

This example builds a small users API out of schema-validated endpoints,
nests it under a secured admin group and serves the generated OpenAPI
document next to it.

Run with:
    python examples/users_server_example.py
    python examples/users_server_example.py --port 9000

Then try:
    curl http://127.0.0.1:8000/openapi.json
    curl http://127.0.0.1:8000/users?limit=1
    curl -X POST -H 'Content-Type: application/json' -d '{"name": "Linus"}' http://127.0.0.1:8000/users
    curl -H 'Authorization: Bearer let-me-in' http://127.0.0.1:8000/admin/stats
"""

import argparse
import logging
from typing import Any, Dict

from restprimer import Endpoint, EndpointError, Outcome, Router, serve

# In-memory storage for demo purposes
users: Dict[int, Dict[str, Any]] = {
    1: {"id": 1, "name": "Ada"},
    2: {"id": 2, "name": "Grace"},
}


class ListUsers(Endpoint):
    """GET /users"""

    def query_schema(self):
        return Endpoint.object_schema(
            {"limit": {"type": "integer", "minimum": 1, "default": 20, "description": "Page size"}},
            required=[],
        )

    def response_code_schemas(self):
        return {"200": {"type": "array", "items": Endpoint.openapi_reference("schemas/User")}}

    def operation(self):
        return {"summary": "List users"}

    def handler(self, request):
        return list(users.values())[:request.query["limit"]]


class GetUser(Endpoint):
    """GET /users/:id"""

    def params_schema(self):
        return Endpoint.object_schema({"id": {"type": "integer", "description": "User id"}})

    def response_code_schemas(self):
        return {"200": Endpoint.openapi_reference("schemas/User")}

    def handler(self, request):
        user = users.get(request.params["id"])
        if user is None:
            raise EndpointError("User not found.", 404)
        return user


class CreateUser(Endpoint):
    """POST /users"""

    def body_schema(self):
        return Endpoint.object_schema({"name": {"type": "string", "minLength": 1}})

    def response_code_schemas(self):
        return {"201": Endpoint.openapi_reference("schemas/User")}

    async def handler(self, request):
        user_id = max(users, default=0) + 1
        users[user_id] = {"id": user_id, "name": request.body["name"]}
        return Outcome(users[user_id], 201, {"Location": f"/users/{user_id}"})


def require_token(request, response):
    """Reject requests without the demo bearer token."""
    if request.get_header("authorization") != "Bearer let-me-in":
        raise EndpointError("Unauthorized.", 401)


def create_users_app():
    """Create the users application."""
    router = Router(components={
        "schemas": {
            "User": {
                "type": "object",
                "properties": {"id": {"type": "integer"}, "name": {"type": "string"}},
                "required": ["id", "name"],
            },
        },
    })

    def users_group(r):
        r.route("/", ListUsers)
        r.route("/", CreateUser.with_default_options(validate_response=True), "post")
        r.route("/:id(\\d+)", GetUser)

    def admin_group(r):
        r.secure(require_token, "bearerAuth", {"type": "http", "scheme": "bearer"})
        r.route("/stats", Endpoint(lambda request: {"users": len(users)}))

    router.group("/users", users_group, tags=["users"])
    router.group("/admin", admin_group, tags=["admin"])
    router.serve_spec("/openapi.json", info={"title": "Users API", "version": "1.0.0"})
    return router.mount()


def main():
    parser = argparse.ArgumentParser(description="restprimer users API example")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    app = create_users_app()
    serve(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
