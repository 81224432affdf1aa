# fleet/pnl/router.py

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from fleet.core.db import get_db
from fleet.pnl.schemas import VehiclePnLSummary
from fleet.pnl.services import PnLService
from fleet.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/pnl", tags=["P&L"])


def get_pnl_service(db: Session = Depends(get_db)) -> PnLService:
    """Provides an instance of PnLService with the current DB session."""
    return PnLService(db)


@router.get("/vehicles/{vehicle_id}/summary", response_model=VehiclePnLSummary, summary="Vehicle P&L Summary")
def get_vehicle_summary(
    vehicle_id: int,
    pnl_service: PnLService = Depends(get_pnl_service),
):
    """Revenue, cost and net for a single vehicle."""
    try:
        return pnl_service.vehicle_summary(vehicle_id)
    except Exception as e:
        logger.error("Error building P&L summary for vehicle %s: %s", vehicle_id, e, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An error occurred while building the P&L summary.",
        ) from e
