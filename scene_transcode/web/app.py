"""
Read-only HTTP view over running transcodes.

Every route is a thin accessor over a ProgressRegistry: nothing here can
influence a transcode.
"""

import threading
from typing import List, Optional

import uvicorn
from fastapi import FastAPI
from pydantic import BaseModel

from ..core.modules.processing.progress import ProgressRegistry, ProgressSnapshot, default_registry
from ..utils.logging import get_logger

logger = get_logger("web")


class ProgressResponse(BaseModel):
    id: str
    fps: float
    frame: int
    frames: int
    percentage: float
    eta: Optional[int] = None
    size: int
    reduction: float
    current_scene_count: int
    total_scene_count: int
    current_file_count: int
    total_files: int
    current_file_name: str


def _response(snapshot: ProgressSnapshot) -> ProgressResponse:
    return ProgressResponse(**snapshot.to_dict())


def create_app(registry: Optional[ProgressRegistry] = None) -> FastAPI:
    registry = registry if registry is not None else default_registry
    app = FastAPI(title="scene-transcode progress")

    @app.get("/progress", response_model=ProgressResponse)
    def progress_current():
        return _response(registry.current())

    @app.get("/progress_all", response_model=List[ProgressResponse])
    def progress_all():
        return [_response(s) for s in registry.all()]

    @app.get("/progress/{task_id}", response_model=ProgressResponse)
    def progress_by_id(task_id: str):
        return _response(registry.get(task_id))

    return app


def serve_in_background(port: int, host: str = "127.0.0.1",
                        registry: Optional[ProgressRegistry] = None) -> threading.Thread:
    """Run the progress API on a daemon thread for the lifetime of the process."""
    config = uvicorn.Config(create_app(registry), host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, daemon=True, name="progress-web")
    thread.start()
    logger.info(f"Progress API listening on http://{host}:{port}/progress")
    return thread
