"""Backend-for-frontend between the project dashboard and OpenProject.

``opbridge.main`` builds the FastAPI application; run it with
``uvicorn opbridge.main:app``.
"""

__all__: list[str] = []
