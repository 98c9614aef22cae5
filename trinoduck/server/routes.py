"""Route definitions for the statement protocol.

    /v1/statement - Statement submission, polling and cancellation
    /v1/query - Query state
    /v1/info - Server information
"""

from starlette.routing import Route

from . import handlers


def get_statement_routes() -> list[Route]:
    """Get all statement protocol routes.

    Returns:
        List of Starlette Route objects
    """
    return [
        Route("/v1/statement", handlers.submit_statement, methods=["POST"]),
        Route("/v1/statement/queued/{queryId}/{token}", handlers.get_queued, methods=["GET"]),
        Route("/v1/statement/executing/{queryId}/{token}", handlers.get_executing, methods=["GET"]),
        Route(
            "/v1/statement/{stage:str}/{queryId}/{token}",
            handlers.cancel_query,
            methods=["DELETE"],
        ),
        Route("/v1/query/{queryId}", handlers.get_query_info, methods=["GET"]),
        Route("/v1/info", handlers.get_server_info, methods=["GET"]),
    ]


# Convenience export
statement_routes = get_statement_routes()
