"""
City API: a small FastAPI service storing cities in PostgreSQL.

Modules:
- config: environment settings and database connection descriptor resolution
- db: per-operation PostgreSQL connections + query helpers
- errors: service errors translated to JSON responses
- schemas: Pydantic models for the REST API
- main: application factory, routes and the uvicorn entrypoint
"""
