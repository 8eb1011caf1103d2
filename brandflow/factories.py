from functools import lru_cache

import boto3

from brandflow.packages.auth.providers import AuthProvider, JwtAuthProvider
from brandflow.packages.storage.object_storage import (
    LocalObjectStorage,
    ObjectStorage,
    S3ObjectStorage,
)
from brandflow.settings import settings


@lru_cache
def aws_session_factory() -> boto3.Session:
    return boto3.Session(
        region_name=settings.AWS_REGION,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
    )


@lru_cache
def auth_provider_factory() -> AuthProvider:
    return JwtAuthProvider(
        jwt_secret=settings.AUTH_JWT_SECRET,
        jwt_algorithm=settings.AUTH_JWT_ALGORITHM,
        audience=settings.AUTH_JWT_AUDIENCE,
    )


@lru_cache
def object_storage_factory() -> ObjectStorage:
    if settings.STORAGE_TYPE == "s3":
        return S3ObjectStorage(
            s3_client=aws_session_factory().client("s3"),
            bucket=settings.STORAGE_BUCKET,
        )
    elif settings.STORAGE_TYPE == "local":
        return LocalObjectStorage(settings.STORAGE_LOCAL_ROOT)
    else:
        raise ValueError(f"Invalid storage type: {settings.STORAGE_TYPE}")


@lru_cache
def scheduler_factory():
    """APScheduler instance, one per worker process.

    Returns:
        AsyncIOScheduler: Scheduler with the session reaper registered
    """
    from brandflow.services.scheduler_service import get_scheduler

    return get_scheduler()
