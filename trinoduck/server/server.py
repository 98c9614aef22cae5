"""Application factory and CLI entry point for the fake coordinator."""

import argparse
import logging

try:
    from starlette.applications import Starlette
    from starlette.requests import Request
    from starlette.responses import JSONResponse
    from starlette.routing import Route
    from uvicorn import run
except ImportError as e:
    raise ImportError(
        "Optional dependencies for the server are not installed. "
        "Install them using one of the following commands:\n"
        "  - With uv: 'uv sync --extra server'\n"
        "  - With pip: 'pip install trinoduck[server]'"
    ) from e

from .middleware import ErrorHandlingMiddleware, UserValidationMiddleware
from .routes import get_statement_routes

logger = logging.getLogger(__name__)


async def fallback_route(request: Request) -> JSONResponse:
    """Fallback route to log unmatched requests."""
    logger.warning("Received unmatched request: %s %s", request.method, request.url)
    return JSONResponse({"errorName": "NOT_FOUND", "message": "Route not found."}, status_code=404)


def create_app(debug: bool = False) -> Starlette:
    """Create the Starlette application serving the statement protocol."""
    routes = [
        *get_statement_routes(),
        Route("/{path:path}", fallback_route),  # Fallback route
    ]
    app = Starlette(debug=debug, routes=routes)
    # The last middleware added is the outermost one.
    app.add_middleware(UserValidationMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)
    return app


app = create_app()


# CLI Entry Point
def main() -> None:
    parser = argparse.ArgumentParser(description="Run the trinoduck coordinator.")

    parser.add_argument(
        "--host", type=str, default="127.0.0.1", help="Host to run the server on (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--port", type=int, default=8080, help="Port to run the server on (default: 8080)"
    )

    parser.add_argument(
        "--debug", action="store_true", help="Enable debug mode (default: False)"
    )

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)
    app.debug = args.debug

    # Run the server with the provided arguments
    run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
