"""trinoduck server - a statement-protocol coordinator backed by DuckDB.

Modules:
    server: Application factory and CLI entry point
    handlers: Statement protocol request handlers
    routes: Route definitions
    engine: Statement execution on DuckDB
    statement_manager: Query storage and lifecycle
    types: DuckDB to coordinator type conversion
    middleware: HTTP middleware (error handling, user validation)
    shared: Shared state (engine, statement manager)
"""

from .engine import Engine, EngineError, ExecutionResult, SessionContext
from .middleware import ErrorHandlingMiddleware, UserValidationMiddleware
from .routes import get_statement_routes, statement_routes
from .server import app, create_app
from .shared import ServerError, shared_engine, statement_manager
from .statement_manager import StatementManager, StatementResult

__all__ = [
    # Application
    "app",
    "create_app",
    # Routes
    "get_statement_routes",
    "statement_routes",
    # Middleware
    "ErrorHandlingMiddleware",
    "UserValidationMiddleware",
    # Execution
    "Engine",
    "EngineError",
    "ExecutionResult",
    "SessionContext",
    # Managers
    "StatementManager",
    "StatementResult",
    "statement_manager",
    # Shared state
    "ServerError",
    "shared_engine",
]
