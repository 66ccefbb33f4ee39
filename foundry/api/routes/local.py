"""
Local directory binding endpoints.

Provides endpoints for:
- GET /local/projects/{id}/path - Bound directory of a project
- PUT /local/projects/{id}/path - Bind a project to a directory
- DELETE /local/projects/{id}/path - Unbind a project
- POST /local/projects/{id}/auto-bind - Folder under the project root for a new project
- GET /local/project-root - Directory new projects are created under
- PUT /local/project-root - Change it
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...core.exceptions import InvalidPathError
from ...core.registry import DirectoryRegistry, ProjectBinding, validate_directory_exists
from ..deps import get_registry
from ..models import (
    AutoBindRequest,
    BindPathRequest,
    BindingResponse,
    LocalPathResponse,
    OkResponse,
    ProjectRootRequest,
    ProjectRootResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/local", tags=["local"])


def binding_to_response(binding: ProjectBinding) -> BindingResponse:
    return BindingResponse(
        project_id=binding.project_id,
        path=binding.path,
        created_at=binding.created_at,
        updated_at=binding.updated_at,
    )


@router.get("/projects/{project_id}/path", response_model=LocalPathResponse)
def get_local_path(
    project_id: str,
    registry: DirectoryRegistry = Depends(get_registry),
) -> LocalPathResponse:
    """Get the directory a project is bound to (path is null when unbound)."""
    return LocalPathResponse(
        project_id=project_id,
        path=registry.get(project_id),
        registry=str(registry.file_path),
    )


@router.put("/projects/{project_id}/path", response_model=BindingResponse)
def set_local_path(
    project_id: str,
    request: BindPathRequest,
    registry: DirectoryRegistry = Depends(get_registry),
) -> BindingResponse:
    """
    Bind a project to an existing local directory.

    Returns 400 when the path is not an accessible directory.
    """
    check = validate_directory_exists(request.path)
    if not check.ok:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Path invalid: {check.reason}",
        )
    return binding_to_response(registry.set(project_id, check.path))


@router.delete("/projects/{project_id}/path", response_model=OkResponse)
def remove_local_path(
    project_id: str,
    registry: DirectoryRegistry = Depends(get_registry),
) -> OkResponse:
    """Unbind a project. Unbinding an unbound project succeeds."""
    registry.remove(project_id)
    return OkResponse()


@router.post("/projects/{project_id}/auto-bind", response_model=LocalPathResponse)
def auto_bind_project(
    project_id: str,
    request: AutoBindRequest,
    registry: DirectoryRegistry = Depends(get_registry),
) -> LocalPathResponse:
    """
    Give a newly created project its own folder under the project root.

    A project that is already bound keeps its directory. Returns 500 when
    the folder cannot be created or bound.
    """
    path = registry.get(project_id) or registry.auto_bind_new_project(project_id, request.name)
    if path is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Could not create a folder for project {project_id}",
        )
    return LocalPathResponse(project_id=project_id, path=path, registry=str(registry.file_path))


@router.get("/project-root", response_model=ProjectRootResponse)
def get_project_root(
    registry: DirectoryRegistry = Depends(get_registry),
) -> ProjectRootResponse:
    return ProjectRootResponse(path=registry.get_project_root())


@router.put("/project-root", response_model=ProjectRootResponse)
def set_project_root(
    request: ProjectRootRequest,
    registry: DirectoryRegistry = Depends(get_registry),
) -> ProjectRootResponse:
    """Set the project root; the directory is created if missing."""
    try:
        path = registry.set_project_root(request.path)
    except InvalidPathError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return ProjectRootResponse(path=path)
