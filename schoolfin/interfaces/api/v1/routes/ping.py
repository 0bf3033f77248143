from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from schoolfin.application.services.health_service import get_service_status
from schoolfin.infrastructure.cache.redis_client import get_redis_client
from schoolfin.infrastructure.db.session import get_db

router = APIRouter(tags=["health"])


@router.get("/ping")
def ping(db: Session = Depends(get_db)):
    return get_service_status(db=db, redis_client=get_redis_client())
