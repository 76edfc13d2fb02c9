"""Fallback Routes — what unmatched paths return, chosen once at startup.

Invariants:
    - Installed after every other router so explicit routes take precedence
    - DescribeEndpoints never serves files; unmatched /api/* paths stay 404
    - ServeStatic never serves a file outside its directory
    - select_fallback() is the only place the environment mode is consulted

Design Decisions:
    - Strategy objects instead of an inline NODE_ENV branch in the request path
    - SPA routing: any GET that is not a file falls back to index.html
      (StaticFiles(html=True) only falls back to 404.html)
"""

from dataclasses import dataclass
from pathlib import Path

from fastapi import FastAPI, HTTPException, status
from fastapi.responses import FileResponse

from app.config import Settings

BACKEND_DIR = Path(__file__).resolve().parents[3]
PUBLIC_ENDPOINTS = ("/api/auth", "/api/health", "/api/test")
ANY_METHOD = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class FallbackStrategy:
    """Base for catch-all route installers."""

    def install(self, app: FastAPI) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class DescribeEndpoints(FallbackStrategy):
    """Production: answer non-API paths with a JSON endpoint descriptor."""
    version: str
    endpoints: tuple[str, ...] = PUBLIC_ENDPOINTS

    def describe(self) -> dict:
        return {
            "message": "Auth API is running!",
            "version": self.version,
            "endpoints": list(self.endpoints),
        }

    def install(self, app: FastAPI) -> None:
        @app.api_route("/{path:path}", methods=ANY_METHOD, include_in_schema=False)
        async def describe_endpoints(path: str):
            if path.startswith("api/"):
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
            return self.describe()


@dataclass(frozen=True)
class ServeStatic(FallbackStrategy):
    """Development: serve the client build, with index.html as SPA fallback."""
    directory: Path

    def resolve(self, path: str) -> Path | None:
        root = self.directory.resolve()
        if path:
            candidate = (root / path).resolve()
            if candidate.is_relative_to(root) and candidate.is_file():
                return candidate
        index = root / "index.html"
        return index if index.is_file() else None

    def install(self, app: FastAPI) -> None:
        @app.get("/{path:path}", include_in_schema=False)
        async def serve_client(path: str):
            target = self.resolve(path)
            if target is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
            return FileResponse(target)


@dataclass(frozen=True)
class BuildMissing(FallbackStrategy):
    """Development without a client build: explain how to produce one."""
    directory: Path

    def install(self, app: FastAPI) -> None:
        @app.get("/{path:path}", include_in_schema=False)
        async def build_missing(path: str):
            return {
                "message": "Client build not found. Run 'npm run build' in client directory.",
            }


def resolve_build_dir(configured: str) -> Path:
    path = Path(configured)
    return path if path.is_absolute() else (BACKEND_DIR / path).resolve()


def select_fallback(settings: Settings) -> FallbackStrategy:
    """Pick the catch-all behaviour for this process."""
    if settings.is_production:
        return DescribeEndpoints(version=settings.api_version)
    directory = resolve_build_dir(settings.client_build_dir)
    if directory.is_dir():
        return ServeStatic(directory)
    return BuildMissing(directory)
