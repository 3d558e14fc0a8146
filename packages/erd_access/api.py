"""FastAPI application for the access-control service."""

from __future__ import annotations

from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator, List, Optional, Union

from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from . import schemas
from .adapters.base import StorageAdapter
from .adapters.sql import AccessDatabase, SqlAlchemyAdapter, init_engine
from .config import AccessSettings
from .errors import AccessError
from .notifications import NotificationService, NotificationSink
from .service import AccessControlService, SessionResolver

__all__ = ["create_app", "AccessSettings"]

USER_ID_HEADER = "x-user-id"
USER_EMAIL_HEADER = "x-user-email"
USER_NAME_HEADER = "x-user-name"
USER_IMAGE_HEADER = "x-user-image"


def session_from_headers(request: Request) -> Optional[schemas.Session]:
    """Session asserted by the identity proxy in front of the service."""

    user_id = request.headers.get(USER_ID_HEADER)
    if not user_id:
        return None
    return schemas.Session(
        user=schemas.SessionUser(
            id=user_id,
            email=request.headers.get(USER_EMAIL_HEADER),
            name=request.headers.get(USER_NAME_HEADER),
            image=request.headers.get(USER_IMAGE_HEADER),
        )
    )


@contextmanager
def _access_errors() -> Iterator[None]:
    try:
        yield
    except AccessError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.reason) from None


def create_app(
    settings: AccessSettings | None = None,
    *,
    adapter: StorageAdapter | None = None,
    notification_sink: NotificationSink | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or AccessSettings.from_env()
    database: AccessDatabase | None = None
    if adapter is None:
        database = AccessDatabase(init_engine(settings))
        adapter = SqlAlchemyAdapter(database)
    sink = notification_sink or NotificationService.from_settings(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if database is not None:
            await database.create_all()
        yield
        if database is not None:
            await database.dispose()

    app = FastAPI(title="Easy RD Access Service", version="1.0.0", lifespan=lifespan)

    def get_service(request: Request) -> AccessControlService:
        session = session_from_headers(request)

        async def resolve() -> Optional[schemas.Session]:
            return session

        resolver: SessionResolver = resolve
        return AccessControlService(
            storage_adapter=adapter,
            session_resolver=resolver,
            origin=settings.origin or str(request.base_url),
            settings=settings,
            notification_sink=sink,
        )

    @app.exception_handler(Exception)
    async def _handle_errors(request: Request, exc: Exception):  # type: ignore[override]
        if isinstance(exc, HTTPException):
            raise exc
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error", "error": str(exc)},
        )

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.post("/v1/members", response_model=schemas.Member)
    async def create_member(
        service: AccessControlService = Depends(get_service),
    ) -> schemas.Member:
        with _access_errors():
            return await service.create_member()

    @app.get("/v1/projects", response_model=List[schemas.ProjectSimple])
    async def list_projects(
        service: AccessControlService = Depends(get_service),
    ) -> List[schemas.ProjectSimple]:
        return await service.find_all_projects_of_member()

    @app.post(
        "/v1/projects",
        response_model=schemas.ProjectDetail,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_project(
        payload: schemas.ProjectCreate,
        service: AccessControlService = Depends(get_service),
    ) -> schemas.ProjectDetail:
        with _access_errors():
            return await service.create_project(payload)

    @app.get("/v1/projects/{project_id}", response_model=schemas.ProjectDetail)
    async def get_project(
        project_id: str, service: AccessControlService = Depends(get_service)
    ) -> schemas.ProjectDetail:
        with _access_errors():
            return await service.find_project(project_id)

    @app.patch("/v1/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def update_project(
        project_id: str,
        payload: schemas.ProjectUpdate,
        service: AccessControlService = Depends(get_service),
    ) -> Response:
        with _access_errors():
            await service.update_project(project_id, payload)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.delete("/v1/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_project(
        project_id: str, service: AccessControlService = Depends(get_service)
    ) -> Response:
        with _access_errors():
            await service.delete_project(project_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.patch(
        "/v1/projects/{project_id}/permissions", status_code=status.HTTP_204_NO_CONTENT
    )
    async def update_permission(
        project_id: str,
        payload: Union[
            schemas.UpdatePublicPermission, schemas.UpdateMemberPermission
        ] = Body(discriminator="type"),
        service: AccessControlService = Depends(get_service),
    ) -> Response:
        with _access_errors():
            await service.update_permission(project_id, payload)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post(
        "/v1/projects/{project_id}/permissions",
        response_model=schemas.SharedMember,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_member_permission(
        project_id: str,
        payload: schemas.CreateMemberPermission,
        service: AccessControlService = Depends(get_service),
    ) -> schemas.SharedMember:
        with _access_errors():
            return await service.create_member_permission(project_id, payload)

    @app.delete(
        "/v1/projects/{project_id}/permissions/{member_id}",
        status_code=status.HTTP_204_NO_CONTENT,
    )
    async def delete_permission(
        project_id: str,
        member_id: str,
        service: AccessControlService = Depends(get_service),
    ) -> Response:
        with _access_errors():
            await service.delete_permission(
                project_id, schemas.DeletePermission(member_id=member_id)
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app
