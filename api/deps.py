"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends

from api.config import Settings, get_settings
from api.database import DbSession
from api.services.effectiveness_service import EffectivenessService, get_effectiveness_service
from api.services.job_service import JobService, get_job_service

# Re-export DbSession for convenience
__all__ = ["DbSession", "SettingsDep", "JobServiceDep", "EffectivenessServiceDep"]


SettingsDep = Annotated[Settings, Depends(get_settings)]

JobServiceDep = Annotated[JobService, Depends(get_job_service)]

EffectivenessServiceDep = Annotated[EffectivenessService, Depends(get_effectiveness_service)]
