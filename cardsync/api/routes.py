# cardsync/api/routes.py
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from .. import crud, schemas
from ..schemas import RunStatus

router = APIRouter()

def get_container(request: Request):
    return request.app.state.container

def get_db(container=Depends(get_container)):
    db = container.session_factory()
    try:
        yield db
    finally:
        db.close()

@router.get("/health")
def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

@router.get("/")
def info():
    return {
        "message": "Pokemon TCG Card Scraper Bot",
        "version": "1.0.0",
        "endpoints": {"health": "/health", "listings": "/listings", "sync": "/sync"},
    }

@router.get("/listings", response_model=List[schemas.ListingOut])
def listings(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=200),
    source: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    res = crud.list_listings(db, skip=skip, limit=limit, source=source)
    return res["items"]

@router.post("/sync", response_model=schemas.SyncReport)
def trigger_sync(container=Depends(get_container)):
    report = container.scheduler.run_now(trigger="api")
    if report.status == RunStatus.SKIPPED:
        raise HTTPException(status_code=409, detail="A sync is already in progress")
    if report.status == RunStatus.CANCELLED:
        raise HTTPException(status_code=503, detail="Sync cancelled: service is shutting down")
    if report.status == RunStatus.FAILED:
        raise HTTPException(status_code=500, detail=report.error or "Sync failed")
    return report
