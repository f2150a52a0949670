"""Remote project store - FastAPI app over db.operations / db.chat_operations.

Run standalone with ``python -m services.store_server`` (uvicorn on port
3001) or mount the app elsewhere; all routes live under ``/api``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from db import chat_operations, operations
from shared.exceptions import InvalidNodeError, ProjectNotFoundError

logger = logging.getLogger(__name__)


# --- Request models (camelCase, as sent by the browser client) ---

class CreateProjectRequest(BaseModel):
    name: str = ""
    id: Optional[str] = None
    description: Optional[str] = None


class UpdateProjectRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    tasksCount: Optional[int] = None
    lastOpened: Optional[str] = None


class SaveStateRequest(BaseModel):
    rootNodes: list[dict] = Field(default_factory=list)
    knowledgeBase: Optional[str] = None
    clipboardItems: Optional[list[dict]] = None


class ChatSaveRequest(BaseModel):
    messages: list[dict] = Field(default_factory=list)


def _not_found(project_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Project {project_id} not found")


router = APIRouter(prefix="/api")


@router.get("/health")
def health():
    return {"status": "ok"}


# --- Projects ---

@router.get("/projects")
def list_projects(limit: int = 100):
    return operations.list_projects(limit=limit)


@router.post("/projects")
def create_project(req: CreateProjectRequest):
    if not req.name.strip():
        raise HTTPException(status_code=400, detail="Project name is required.")
    if req.id and operations.get_project(req.id):
        raise HTTPException(status_code=409, detail=f"Project {req.id} already exists")
    try:
        return operations.create_project(req.name, project_id=req.id or "", description=req.description or "")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/projects/{project_id}")
def update_project(project_id: str, req: UpdateProjectRequest):
    try:
        updated = operations.update_project(
            project_id,
            name=req.name or "",
            description=req.description or "",
            tasks_count=req.tasksCount if req.tasksCount is not None else -1,
            last_opened=req.lastOpened or "",
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not updated:
        raise _not_found(project_id)
    return operations.get_project(project_id)


@router.delete("/projects/{project_id}")
def delete_project(project_id: str):
    if not operations.delete_project(project_id):
        raise _not_found(project_id)
    return {"success": True}


# --- Project state ---

@router.get("/projects/{project_id}/state")
def load_state(project_id: str):
    state = operations.load_project_state(project_id)
    if not state:
        raise _not_found(project_id)
    return state


@router.post("/projects/{project_id}/state")
def save_state(project_id: str, req: SaveStateRequest):
    try:
        summary = operations.save_project_state(
            project_id,
            req.rootNodes,
            knowledge_base=req.knowledgeBase,
            clipboard_items=req.clipboardItems,
        )
    except ProjectNotFoundError:
        raise _not_found(project_id)
    except InvalidNodeError as e:
        logger.warning("Rejected state of %s: %s", project_id, e)
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, **summary}


# --- Chat ---

@router.get("/projects/{project_id}/chat")
def load_chat(project_id: str):
    if not operations.get_project(project_id):
        raise _not_found(project_id)
    return chat_operations.get_messages(project_id)


@router.post("/projects/{project_id}/chat")
def save_chat(project_id: str, req: ChatSaveRequest):
    try:
        inserted = chat_operations.append_messages(project_id, req.messages)
    except ProjectNotFoundError:
        raise _not_found(project_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "inserted": inserted}


@asynccontextmanager
async def lifespan(app: FastAPI):
    operations.init_database()
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="AutoCoder Project Store", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from services.log_config import setup_logging

    setup_logging()
    uvicorn.run(app, host="0.0.0.0", port=3001)
