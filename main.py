"""
Serverless entry point for the Folio service.

The Python runtime loads this module and serves the ASGI object named
`app`. The application itself, with its startup hooks and routes, lives
in `folio.main`. Locally, `uvicorn main:app` serves the same object.
"""

from folio.main import app as app  # noqa: F401  ASGI application
