"""FastAPI app serving pipeline outputs during development.

Every GET/HEAD request is mapped to an output path. Built assets are cached
by the pipeline; ETags are computed once per built asset.
"""

from __future__ import annotations

import hashlib
import logging
import posixpath
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from email.utils import formatdate, parsedate_to_datetime

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import FileResponse

from convoy.assets import BuiltAsset
from convoy.config import ONE_YEAR
from convoy.copier import AssetCopier
from convoy.errors import AssetNotFoundError, ConvoyError
from convoy.fsutils import run_blocking
from convoy.pipeline import Pipeline

logger = logging.getLogger(__name__)

TEXT_TYPES = ("text/", "application/javascript", "application/json", "image/svg+xml")
HASH_BUFFER_SIZE = 64 * 1024


def _md5_file(path: str) -> str:
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_BUFFER_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


async def prepare_etag(asset: BuiltAsset, encoding: str = "utf-8") -> str:
    """Compute (once) the quoted md5 ETag of an asset body."""
    if asset.etag is None:
        if asset.body_path:
            digest = await run_blocking(_md5_file, asset.body_path)
        else:
            digest = hashlib.md5((asset.body or "").encode(encoding)).hexdigest()
        asset.etag = f'"{digest}"'
    return asset.etag


def content_type(asset: BuiltAsset, charset: str = "utf-8") -> str:
    media_type = asset.type or "application/octet-stream"
    if media_type.startswith(TEXT_TYPES) and "charset=" not in media_type:
        media_type += f"; charset={charset}"
    return media_type


def normalize_request_path(path: str) -> str | None:
    """Turn a decoded URL path into an output path.

    Returns None when the path tries to escape the root.
    """
    if "\0" in path:
        return None
    if path.endswith("/"):
        path += "index.html"
    if ".." in path.split("/"):
        return None
    return posixpath.normpath(path).lstrip("/")


def is_not_modified(request: Request, etag: str, mtime: float | None) -> bool:
    """Evaluate If-None-Match / If-Modified-Since against the asset."""
    if_none_match = request.headers.get("if-none-match")
    if if_none_match is not None:
        tags = [tag.strip() for tag in if_none_match.split(",")]
        return "*" in tags or etag in tags or f"W/{etag}" in tags

    if_modified_since = request.headers.get("if-modified-since")
    if if_modified_since and mtime is not None:
        try:
            since = parsedate_to_datetime(if_modified_since).timestamp()
        except (TypeError, ValueError):
            return False
        return int(mtime) <= since
    return False


def create_app(pipeline: Pipeline, max_age: int | str = 0, hidden: bool = False) -> FastAPI:
    """Create the FastAPI application serving ``pipeline``.

    Args:
        pipeline: Pipeline whose outputs are served
        max_age: Cache-Control max-age in seconds, or "infinity" for one year
        hidden: Serve paths whose last segment starts with a dot
    """
    max_age_seconds = ONE_YEAR if max_age == "infinity" else int(max_age)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(f"Serving {len(pipeline.targets)} target(s)")
        yield
        pipeline.unwatch()
        logger.info("Server stopped")

    app = FastAPI(
        title="convoy", description="Asset pipeline development server", lifespan=lifespan
    )
    app.state.pipeline = pipeline

    @app.api_route("/{raw_path:path}", methods=["GET", "HEAD"])
    async def serve_asset(raw_path: str, request: Request) -> Response:
        """Build and return the asset for the requested path."""
        path = normalize_request_path("/" + raw_path)
        if path is None:
            raise HTTPException(status_code=403, detail="Forbidden")
        if not hidden and posixpath.basename(path).startswith("."):
            raise HTTPException(status_code=404, detail="Not Found")
        if not await pipeline.exists(path):
            raise HTTPException(status_code=404, detail="Not Found")

        try:
            asset = await pipeline.build(path)
        except ConvoyError as e:
            # A directory under a copy rule is not a servable file
            target = pipeline.find_target(path)
            if isinstance(e, AssetNotFoundError) and isinstance(target, AssetCopier):
                raise HTTPException(status_code=404, detail="Not Found") from e
            logger.error(f"Failed to build {path}: {e}")
            raise HTTPException(status_code=500, detail=str(e)) from e
        if asset.body is None and asset.body_path is None:
            raise HTTPException(status_code=500, detail=f"{path} has no body")

        etag = await prepare_etag(asset)
        headers = {
            "Cache-Control": f"public, max-age={max_age_seconds}",
            "ETag": etag,
        }
        if asset.mtime is not None:
            headers["Last-Modified"] = formatdate(asset.mtime, usegmt=True)

        if is_not_modified(request, etag, asset.mtime):
            return Response(status_code=304, headers=headers)

        media_type = content_type(asset)
        if asset.body_path:
            # FileResponse skips the body for HEAD requests
            return FileResponse(asset.body_path, media_type=media_type, headers=headers)
        body = b"" if request.method == "HEAD" else asset.body.encode("utf-8")
        return Response(content=body, media_type=media_type, headers=headers)

    return app


__all__ = [
    "content_type",
    "create_app",
    "is_not_modified",
    "normalize_request_path",
    "prepare_etag",
]
