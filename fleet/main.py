# fleet/main.py

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import fleet.models  # noqa: F401
from fleet.core.config import settings
from fleet.customers.router import router as customers_router
from fleet.fines.router import router as fines_router
from fleet.ledger.router import router as ledger_router
from fleet.payments.router import router as payments_router
from fleet.pnl.router import router as pnl_router
from fleet.rentals.router import router as rentals_router
from fleet.utils.logger import get_logger

logger = get_logger(__name__)

app = FastAPI(title="Fleet Ledger", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[url.strip() for url in settings.allowed_cors_urls.split(",") if url.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(payments_router)
app.include_router(fines_router)
app.include_router(ledger_router)
app.include_router(customers_router)
app.include_router(pnl_router)
app.include_router(rentals_router)


@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok", "environment": settings.environment}
