from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Path, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette import status

from app.core.db import get_db, init_db
from app.core.exceptions import NotFoundError, StorageError, ValidationError
from app.core.logging import configure_logging
from app.core.settings import config_settings
from app.models.schemas.assignment import AssignmentModel, AssignmentWithUserModel
from app.models.schemas.evaluation import EvaluationResult
from app.models.schemas.experiment import (
    ExperimentCreateModel,
    ExperimentResponseModel,
    ExperimentUpdateModel,
)
from app.models.schemas.flag import (
    FeatureFlagCreateModel,
    FeatureFlagResponseModel,
    FeatureFlagUpdateModel,
)
from app.models.schemas.user import UserCreateModel, UserResponseModel, UserUpdateModel
from app.services.evaluation_service import EvaluationService
from app.services.experiment_service import ExperimentService
from app.services.flag_service import FlagService
from app.services.user_service import UserService

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if config_settings.CREATE_TABLES_ON_STARTUP:
        init_db()
    logger.info("Flag evaluation service started")
    yield


app = FastAPI(
    title="Feature flag experiments",
    description="Feature flags with deterministic A/B variant assignment",
    version="0.1.0",
    lifespan=lifespan,
)

router = APIRouter(prefix="/api")


# --- Error mapping ---


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": exc.message})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.warning("Storage error", method=request.method, path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Database unavailable. Please try again shortly."},
    )


@app.get("/health", status_code=status.HTTP_200_OK, include_in_schema=False)
def health():
    return {"status": "ok"}


# --- Feature flags ---


@router.get("/flags", response_model=list[FeatureFlagResponseModel])
def list_flags(db: Session = Depends(get_db)):
    return FlagService(db).list_flags()


@router.get("/flags/{flag_id}", response_model=FeatureFlagResponseModel)
def get_flag(flag_id: str = Path(..., description="Flag id or key."), db: Session = Depends(get_db)):
    return FlagService(db).get_flag(flag_id)


@router.post(
    "/flags",
    response_model=FeatureFlagResponseModel,
    status_code=status.HTTP_201_CREATED,
)
def post_flags(flag_data: FeatureFlagCreateModel, db: Session = Depends(get_db)):
    return FlagService(db).create_flag(flag_data)


@router.put("/flags/{flag_id}", response_model=FeatureFlagResponseModel)
def put_flag(flag_id: str, flag_data: FeatureFlagUpdateModel, db: Session = Depends(get_db)):
    return FlagService(db).update_flag(flag_id, flag_data)


@router.delete("/flags/{flag_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_flag(flag_id: str, db: Session = Depends(get_db)):
    FlagService(db).delete_flag(flag_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/flags/{flag_id}/evaluate/{user_id}",
    response_model=EvaluationResult,
    response_model_exclude_none=True,
    summary="Evaluate a flag for a user",
)
def evaluate_flag(
    flag_id: str = Path(..., description="Flag id or key."),
    user_id: str = Path(..., description="The caller's id for the user."),
    db: Session = Depends(get_db),
):
    """
    Returns whether the flag is enabled and, when it has a running experiment,
    the variant the user is assigned to. The first evaluation persists the
    assignment; later ones return the stored variant.
    """
    return EvaluationService(db).evaluate(flag_id, user_id)


# --- Users ---


@router.get("/users", response_model=list[UserResponseModel])
def list_users(db: Session = Depends(get_db)):
    return UserService(db).list_users()


@router.get("/users/{user_id}", response_model=UserResponseModel)
def get_user(user_id: str, db: Session = Depends(get_db)):
    return UserService(db).get_user(user_id)


@router.post("/users", response_model=UserResponseModel, status_code=status.HTTP_201_CREATED)
def post_users(user_data: UserCreateModel, db: Session = Depends(get_db)):
    return UserService(db).create_user(user_data)


@router.put("/users/{user_id}", response_model=UserResponseModel)
def put_user(user_id: str, user_data: UserUpdateModel, db: Session = Depends(get_db)):
    return UserService(db).update_user(user_id, user_data)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(user_id: str, db: Session = Depends(get_db)):
    UserService(db).delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Experiments ---


@router.get("/experiments", response_model=list[ExperimentResponseModel])
def list_experiments(db: Session = Depends(get_db)):
    return ExperimentService(db).list_experiments()


@router.get("/experiments/flag/{flag_id}", response_model=list[ExperimentResponseModel])
def list_flag_experiments(flag_id: str, db: Session = Depends(get_db)):
    return ExperimentService(db).list_experiments_for_flag(flag_id)


@router.get("/experiments/{experiment_id}", response_model=ExperimentResponseModel)
def get_experiment(experiment_id: str, db: Session = Depends(get_db)):
    return ExperimentService(db).get_experiment(experiment_id)


@router.post(
    "/experiments",
    response_model=ExperimentResponseModel,
    status_code=status.HTTP_201_CREATED,
)
def post_experiments(experiment_data: ExperimentCreateModel, db: Session = Depends(get_db)):
    return ExperimentService(db).create_experiment(experiment_data)


@router.put("/experiments/{experiment_id}", response_model=ExperimentResponseModel)
def put_experiment(
    experiment_id: str,
    experiment_data: ExperimentUpdateModel,
    db: Session = Depends(get_db),
):
    return ExperimentService(db).update_experiment(experiment_id, experiment_data)


@router.delete("/experiments/{experiment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_experiment(experiment_id: str, db: Session = Depends(get_db)):
    ExperimentService(db).delete_experiment(experiment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/experiments/{experiment_id}/assignments",
    response_model=list[AssignmentWithUserModel],
    summary="List experiment assignments",
)
def get_experiment_assignments(
    experiment_id: str = Path(..., description="The ID of the experiment."),
    db: Session = Depends(get_db),
):
    return ExperimentService(db).get_assignments(experiment_id)


@router.post(
    "/experiments/{experiment_id}/assign/{user_id}",
    response_model=AssignmentModel,
    summary="Assign a user to an experiment",
)
def assign_user_to_experiment(
    experiment_id: str = Path(..., description="The ID of the experiment."),
    user_id: str = Path(..., description="The ID of the user."),
    db: Session = Depends(get_db),
):
    """
    Retrieves a user's variant assignment. If no assignment exists, a new,
    persistent assignment is generated from the experiment's traffic split.
    """
    return ExperimentService(db).assign_user(experiment_id, user_id)


app.include_router(router)


# Entry point for running the application directly (local development)
if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
