# auth_service/api/v1/jobs.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth_service.api.deps import get_db, get_services, require_cron_secret
from auth_service.services.container import Services

router = APIRouter(dependencies=[Depends(require_cron_secret)])


@router.post("/sweep-refresh-tokens")
def sweep_refresh_tokens(db: Session = Depends(get_db), services: Services = Depends(get_services)):
    """Deletes refresh tokens past their expiry. Meant to be called by a scheduler."""
    return {"deleted": services.ledger.sweep_expired(db)}
