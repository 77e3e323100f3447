# imagine_stories/backend/app.py
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from imagine_stories.backend.adapters.capabilities import (
    ImageGenerator,
    TextGenerator,
    build_image_generator,
    build_text_generator,
)
from imagine_stories.backend.adapters.definitions import define_word
from imagine_stories.backend.backups import BackupCoordinator
from imagine_stories.backend.pipeline import StoryPipeline
from imagine_stories.backend.storage.artifacts import ArtifactStore, build_artifact_store
from imagine_stories.backend.storage.files import LocalArtifactStore
from imagine_stories.common import config
from imagine_stories.common import db as store
from imagine_stories.common.auth import check_password, sign_session, verify_session
from imagine_stories.common.errors import (
    AuthError,
    GenerationError,
    InputError,
    NotFoundError,
    StoryError,
)
from imagine_stories.common.models import Success

logger = logging.getLogger("imagine-stories.app")

SESSION_COOKIE = "session"
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")


# -------------------------------
# Pydantic models
# -------------------------------
class CreateStoryReq(BaseModel):
    # Length rules live in the pipeline so they fail as 400s, not 422s.
    prompt: Optional[str] = None
    user_id: Optional[int] = None
    lesson_id: Optional[int] = None
    model_config = ConfigDict(extra="forbid")


class LoginReq(BaseModel):
    password: str = Field(default="", max_length=200)


class UserReq(BaseModel):
    name: str = Field(default="", max_length=80)
    grade: str = Field(default="", max_length=10)
    gender: str = Field(default="", max_length=10)


class LessonReq(BaseModel):
    lesson: str = Field(default="", max_length=400)


class AssignImageReq(BaseModel):
    image_url: str = Field(default="", max_length=4000)


class RestoreReq(BaseModel):
    name: Optional[str] = Field(default=None, max_length=400)


# -------------------------------
# Dependencies
# -------------------------------
def get_db(request: Request) -> store.Database:
    return request.app.state.db


def get_pipeline(request: Request) -> StoryPipeline:
    return request.app.state.pipeline


def get_backups(request: Request) -> BackupCoordinator:
    return request.app.state.backups


def require_admin(request: Request) -> None:
    settings = request.app.state.settings
    token = request.cookies.get(SESSION_COOKIE)
    if not verify_session(token, settings["session_secret"], settings["session_max_age"]):
        raise AuthError("Admin login required.")


def _story_dict(story) -> Dict[str, Any]:
    return asdict(story)


async def _list_available_images(artifacts: ArtifactStore, prefix: str) -> List[Dict[str, Any]]:
    items = await artifacts.list_by_prefix(prefix)
    items = [i for i in items if i.name.lower().endswith(IMAGE_EXTENSIONS)]
    items.sort(key=lambda i: i.created_at, reverse=True)
    urls = await asyncio.gather(
        *(artifacts.issue_read_url(i.name, config.SIGNED_URL_EXPIRES_AT) for i in items)
    )
    folder = prefix.rpartition("/")[0]
    return [
        {
            "url": url,
            "name": i.name[len(folder) + 1 :] if folder else i.name,
            "created_at": i.created_at.isoformat(),
        }
        for i, url in zip(items, urls)
    ]


# -------------------------------
# Routes
# -------------------------------
router = APIRouter()


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/")
def home(db: store.Database = Depends(get_db)):
    return {
        "users": [asdict(u) for u in store.list_users(db)],
        "stories": [_story_dict(s) for s in store.list_stories(db)],
    }


@router.post("/story")
async def create_story(req: CreateStoryReq, pipeline: StoryPipeline = Depends(get_pipeline)):
    """
    Generate a story (and, best-effort, its illustration) and redirect to it.
    """
    outcome = await pipeline.run(req.prompt, user_id=req.user_id, lesson_id=req.lesson_id)
    if isinstance(outcome, Success):
        return RedirectResponse(outcome.location, status_code=303)
    raise HTTPException(status_code=outcome.status_code, detail=outcome.to_detail())


@router.get("/story/{story_id}")
def get_story(story_id: int, db: store.Database = Depends(get_db)):
    story = store.get_story(db, story_id)
    if not story:
        raise NotFoundError("Story not found")
    return _story_dict(story)


@router.get("/stories")
def list_stories(db: store.Database = Depends(get_db)):
    return {"stories": [_story_dict(s) for s in store.list_stories(db)]}


@router.get("/define")
async def define(request: Request, word: Optional[str] = None):
    if not word or not word.strip():
        raise InputError("Word parameter is missing")
    try:
        return await define_word(request.app.state.text_generator, word)
    except StoryError:
        raise
    except Exception as exc:
        logger.error("Failed to get definition: %s", exc)
        raise GenerationError("Failed to fetch definition") from exc


@router.post("/login")
def login(req: LoginReq, request: Request, response: Response):
    settings = request.app.state.settings
    if not check_password(req.password, settings["admin_password"]):
        raise AuthError("Invalid password.")
    response.set_cookie(
        SESSION_COOKIE,
        sign_session(settings["session_secret"]),
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings["cookie_secure"],
        max_age=settings["session_max_age"],
    )
    return {"ok": True}


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE, path="/")
    return {"ok": True}


# -------------------------------
# Admin routes
# -------------------------------
admin = APIRouter(dependencies=[Depends(require_admin)])


@admin.get("/settings")
async def settings_page(request: Request, db: store.Database = Depends(get_db)):
    state = request.app.state
    data: Dict[str, Any] = {
        "users": [asdict(u) for u in await asyncio.to_thread(store.list_users, db)],
        "lessons": [asdict(lesson) for lesson in await asyncio.to_thread(store.list_lessons, db)],
        "stories": [_story_dict(s) for s in await asyncio.to_thread(store.list_stories, db)],
        "stories_without_images": [
            _story_dict(s) for s in await asyncio.to_thread(store.list_stories_without_images, db)
        ],
        "available_images": [],
        "backups": [],
    }
    try:
        backups = await state.backups.list_backups()
        data["backups"] = [
            {"name": b.name, "created_at": b.created_at.isoformat()} for b in backups
        ]
        data["available_images"] = await _list_available_images(
            state.artifacts, state.settings["image_prefix"]
        )
    except Exception as exc:
        logger.error("Failed to fetch artifact store data: %s", exc)
    return data


@admin.post("/users")
def add_user(req: UserReq, db: store.Database = Depends(get_db)):
    user_id = store.create_user(db, req.name, req.grade, req.gender)
    return {"success": True, "id": user_id}


@admin.delete("/users/{user_id}")
def delete_user(user_id: int, db: store.Database = Depends(get_db)):
    store.delete_user(db, user_id)
    return {"success": True}


@admin.post("/lessons")
def add_lesson(req: LessonReq, db: store.Database = Depends(get_db)):
    lesson_id = store.create_lesson(db, req.lesson)
    return {"success": True, "id": lesson_id}


@admin.delete("/lessons/{lesson_id}")
def delete_lesson(lesson_id: int, db: store.Database = Depends(get_db)):
    store.delete_lesson(db, lesson_id)
    return {"success": True}


@admin.delete("/story/{story_id}")
def delete_story(story_id: int, db: store.Database = Depends(get_db)):
    store.delete_story(db, story_id)
    return {"success": True}


@admin.post("/story/{story_id}/image")
def assign_image(story_id: int, req: AssignImageReq, db: store.Database = Depends(get_db)):
    store.assign_image_to_story(db, story_id, req.image_url)
    return {
        "success": True,
        "message": f"Image successfully assigned to story #{story_id}",
        "story_id": story_id,
    }


@admin.get("/backups")
async def list_backups(backups: BackupCoordinator = Depends(get_backups)):
    items = await backups.list_backups()
    return {"backups": [{"name": b.name, "created_at": b.created_at.isoformat()} for b in items]}


@admin.post("/backups")
async def create_backup(backups: BackupCoordinator = Depends(get_backups)):
    name = await backups.create_backup()
    return {"success": True, "name": name, "message": f"Database backed up to {name}"}


@admin.post("/backups/restore")
async def restore_backup(req: RestoreReq, backups: BackupCoordinator = Depends(get_backups)):
    if req.name:
        name = await backups.restore_named(req.name)
    else:
        name = await backups.restore_latest_backup()
    return {"success": True, "name": name, "message": f"Database restored from {name}"}


# -------------------------------
# FastAPI app & middleware
# -------------------------------
async def _story_error_handler(request: Request, exc: StoryError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s failed (%s): %s", request.url.path, exc.kind, exc.message)
    return JSONResponse({"detail": exc.to_detail()}, status_code=exc.status_code)


def create_app(
    *,
    db: Optional[store.Database] = None,
    text_generator: Optional[TextGenerator] = None,
    image_generator: Optional[ImageGenerator] = None,
    artifacts: Optional[ArtifactStore] = None,
    admin_password: str = config.ADMIN_PASSWORD,
    session_secret: str = config.SESSION_SECRET,
    image_prefix: str = config.IMAGE_PREFIX,
    backup_prefix: str = config.BACKUP_PREFIX,
) -> FastAPI:
    """
    Build the API. Anything not injected is constructed from configuration at
    startup, once per process.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        state = app.state
        state.db = state.db or store.Database(config.DATABASE_PATH)
        store.init_db(state.db)
        state.artifacts = state.artifacts or build_artifact_store()
        if isinstance(state.artifacts, LocalArtifactStore):
            state.artifacts.ensure_root()
        state.text_generator = state.text_generator or build_text_generator()
        state.image_generator = state.image_generator or build_image_generator()
        state.pipeline = StoryPipeline(
            state.db,
            state.text_generator,
            state.image_generator,
            state.artifacts,
            image_prefix=state.settings["image_prefix"],
        )
        state.backups = BackupCoordinator(state.db, state.artifacts, prefix=backup_prefix)
        logger.info(
            "Ready: db=%s store=%s text=%s image=%s",
            state.db.path,
            state.artifacts.name,
            state.text_generator.provider,
            state.image_generator.provider,
        )
        try:
            yield
        finally:
            state.db.close()

    app = FastAPI(title="Imagine Stories API", version="1.0.0", lifespan=lifespan)
    app.state.db = db
    app.state.text_generator = text_generator
    app.state.image_generator = image_generator
    app.state.artifacts = artifacts
    app.state.settings = {
        "admin_password": admin_password,
        "session_secret": session_secret,
        "session_max_age": config.SESSION_MAX_AGE,
        "cookie_secure": config.COOKIE_SECURE,
        "image_prefix": image_prefix,
    }

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StoryError, _story_error_handler)
    app.include_router(router)
    app.include_router(admin)

    # Generated media for the local artifact store
    if isinstance(artifacts, LocalArtifactStore):
        media_root = artifacts.root
    elif artifacts is None and config.ARTIFACT_STORE == "local":
        media_root = config.MEDIA_DIR
    else:
        media_root = None
    if media_root is not None:
        app.mount("/media", StaticFiles(directory=str(media_root), check_dir=False), name="media")
    return app


app = create_app()
