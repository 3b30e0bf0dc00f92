"""
Borrower API Endpoints.

POST /api/v1/borrowers/{borrower_id}/recalculate         — evaluate all covenants
POST /api/v1/borrowers/{borrower_id}/financials          — ingest a snapshot, then recalculate
POST /api/v1/borrowers/{borrower_id}/financials/validate — data-quality report, nothing stored
POST /api/v1/borrowers/financials/batch                  — ingest many; failures reported per snapshot
GET  /api/v1/borrowers/stale                             — borrowers with outdated financials
GET  /api/v1/borrowers/{borrower_id}/risk                — adverse-event risk aggregate
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from covenantwatch.api.deps import get_service
from covenantwatch.exceptions import ValidationError
from covenantwatch.schemas.covenants import BatchEvaluationResult
from covenantwatch.schemas.events import RiskAggregation
from covenantwatch.schemas.financials import (
    DataQualityReport,
    FinancialBatchIngestResult,
    FinancialIngestResult,
    FinancialSnapshot,
    StaleBorrower,
)
from covenantwatch.service import CovenantWatchService

router = APIRouter(prefix="/api/v1/borrowers", tags=["borrowers"])


class FinancialBatchRequest(BaseModel):
    snapshots: list[FinancialSnapshot] = Field(min_length=1, max_length=500)


def _check_path_borrower(borrower_id: str, body: FinancialSnapshot) -> None:
    if body.borrower_id != borrower_id:
        raise ValidationError(
            "borrower_id in body does not match path", field="borrower_id"
        )


@router.post("/financials/batch", response_model=FinancialBatchIngestResult)
async def ingest_financials_batch(
    body: FinancialBatchRequest,
    service: CovenantWatchService = Depends(get_service),
):
    return await service.ingest_financial_batch(body.snapshots)


@router.get("/stale", response_model=list[StaleBorrower])
async def list_stale_borrowers(
    days: Optional[int] = Query(default=None, ge=0),
    service: CovenantWatchService = Depends(get_service),
):
    return await service.find_stale_borrowers(days)


@router.post("/{borrower_id}/recalculate", response_model=BatchEvaluationResult)
async def recalculate_borrower(
    borrower_id: str,
    service: CovenantWatchService = Depends(get_service),
):
    """Partial results plus per-covenant errors; never fails as a whole."""
    return await service.recalculate_borrower(borrower_id)


@router.post("/{borrower_id}/financials", response_model=FinancialIngestResult)
async def ingest_financials(
    borrower_id: str,
    body: FinancialSnapshot,
    service: CovenantWatchService = Depends(get_service),
):
    _check_path_borrower(borrower_id, body)
    return await service.ingest_financial_data(body)


@router.post("/{borrower_id}/financials/validate", response_model=DataQualityReport)
async def validate_financials(
    borrower_id: str,
    body: FinancialSnapshot,
    service: CovenantWatchService = Depends(get_service),
):
    _check_path_borrower(borrower_id, body)
    return service.assess_data_quality(body)


@router.get("/{borrower_id}/risk", response_model=RiskAggregation)
async def get_borrower_risk(
    borrower_id: str,
    service: CovenantWatchService = Depends(get_service),
):
    return await service.aggregate_borrower_risk(borrower_id)
