from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from billing_service.app.billing.errors import BillingError
from billing_service.app.billing.models import BillingCycle
from billing_service.app.billing.policy import resolve_billing_cycle
from billing_service.app.billing.reconciler import ReconciledCycle
from billing_service.app.deps import BillingServices, get_services
from billing_service.app.schemas import (
    AsOfRequest,
    BatchTopUpRequest,
    BillingOptionsResponse,
    ChargeRequest,
    CheckoutRequest,
    CycleOut,
    EnrollmentObligationsOut,
    ErrorBody,
    FeeRunRequest,
    ObligationsResponse,
    QuoteRequest,
    TopUpRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_BY_CODE = {
    "validation_error": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "not_found": status.HTTP_404_NOT_FOUND,
    "invalid_state": status.HTTP_409_CONFLICT,
    "insufficient_balance": status.HTTP_409_CONFLICT,
}


def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    code = STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST)
    logger.info("request failed path=%s code=%s", request.url.path, exc.code)
    return JSONResponse(status_code=code, content={"success": False, "error": exc.to_dict()})


def _cycle_out(row: ReconciledCycle) -> CycleOut:
    return CycleOut(
        number=row.cycle.number,
        label=row.cycle.label,
        period_label=row.cycle.period_label,
        start_date=row.cycle.start_date,
        due_date=row.cycle.due_date,
        amount=row.cycle.amount,
        status=row.status,
        overdue=row.overdue,
        charge_id=row.charge.id if row.charge else None,
        payable=row.payable,
    )


@router.get("/health")
def health() -> dict:
    return {"ok": True, "service": "billing_service"}


@router.get("/billing-options", response_model=BillingOptionsResponse)
def billing_options(
    cycle: BillingCycle = BillingCycle.MONTHLY,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    duration_months: Optional[int] = None,
) -> BillingOptionsResponse:
    """A fallback is reported in the response body only."""
    decision = resolve_billing_cycle(cycle, start_date, end_date, duration=duration_months)
    warning = decision.warning
    return BillingOptionsResponse(
        requested=decision.requested,
        selected=decision.selected,
        duration_months=decision.duration_months,
        fell_back=decision.fell_back,
        options=[o.model_dump() for o in decision.options],
        warning=ErrorBody(**warning.to_dict()) if warning else None,
    )


@router.get("/accounts/{account_id}/obligations", response_model=ObligationsResponse)
def get_obligations(
    account_id: str,
    as_of: Optional[dt.date] = None,
    services: BillingServices = Depends(get_services),
) -> ObligationsResponse:
    views = services.checkout.obligations(account_id, as_of=as_of)
    out = []
    for view in views:
        rec = view.reconciliation
        out.append(EnrollmentObligationsOut(
            enrollment_id=view.enrollment.id,
            course_id=view.course.id,
            course_code=view.course.code,
            course_name=view.course.name,
            payment_status=rec.payment_status,
            total_fee=rec.total_fee,
            total_paid=rec.total_paid,
            total_outstanding=rec.total_outstanding,
            obligations=[_cycle_out(r) for r in rec.obligations],
            history=[_cycle_out(r) for r in rec.history],
            notices=[ErrorBody(**n.to_dict()) for n in rec.notices],
        ))
    return ObligationsResponse(account_id=account_id, enrollments=out)


@router.post("/accounts/{account_id}/checkout/quote")
def quote_checkout(account_id: str, req: QuoteRequest, services: BillingServices = Depends(get_services)) -> dict:
    quote = services.checkout.quote(account_id, req.charge_ids)
    return {
        "success": True,
        **quote.model_dump(mode="json"),
        "remaining_after_balance": str(quote.remaining_after_balance),
    }


@router.post("/accounts/{account_id}/checkout")
def checkout(account_id: str, req: CheckoutRequest, services: BillingServices = Depends(get_services)) -> dict:
    result = services.checkout.checkout(account_id, req.charge_ids, req.method, req.instrument, as_of=req.as_of)
    alloc = result.allocation
    return {
        "success": True,
        "transaction": result.transaction.model_dump(mode="json"),
        "allocation": {
            "method": alloc.method.value,
            "selected_total": str(alloc.selected_total),
            "balance_used": str(alloc.balance_used),
            "external_amount": str(alloc.external_amount),
            "balance_after": str(alloc.balance_after),
        },
        "charges": [c.model_dump(mode="json") for c in result.charges],
        "notification": result.notification.model_dump(mode="json"),
    }


@router.post("/accounts/{account_id}/top-ups", status_code=status.HTTP_201_CREATED)
def top_up(account_id: str, req: TopUpRequest, services: BillingServices = Depends(get_services)) -> dict:
    result = services.ledger.top_up(
        account_id,
        req.amount,
        description=req.description,
        external_description=req.external_description,
        schedule=req.schedule,
        scheduled_for=req.scheduled_for,
    )
    return {"success": True, **result.model_dump(mode="json")}


@router.post("/accounts/{account_id}/charges", status_code=status.HTTP_201_CREATED)
def post_charge(account_id: str, req: ChargeRequest, services: BillingServices = Depends(get_services)) -> dict:
    result = services.ledger.charge(
        account_id,
        req.amount,
        description=req.description,
        course_id=req.course_id,
        period=req.period,
        schedule=req.schedule,
        scheduled_for=req.scheduled_for,
    )
    return {"success": True, **result.model_dump(mode="json")}


@router.post("/top-ups/batch", status_code=status.HTTP_201_CREATED)
def batch_top_up(req: BatchTopUpRequest, services: BillingServices = Depends(get_services)) -> dict:
    result = services.ledger.batch_top_up(
        req.criteria,
        req.amount,
        description=req.description,
        mode=req.mode,
        external_description=req.external_description,
        schedule=req.schedule,
        scheduled_for=req.scheduled_for,
        created_by=req.created_by,
    )
    return {"success": True, **result.model_dump(mode="json")}


@router.post("/transactions/run-due")
def run_due(req: AsOfRequest, services: BillingServices = Depends(get_services)) -> dict:
    result = services.ledger.run_due(req.as_of)
    return {"success": True, **result.model_dump(mode="json")}


@router.post("/transactions/{transaction_id}/execute")
def execute_scheduled(transaction_id: str, req: AsOfRequest, services: BillingServices = Depends(get_services)) -> dict:
    result = services.ledger.execute_scheduled(transaction_id, as_of=req.as_of)
    return {"success": True, **result.model_dump(mode="json")}


@router.post("/fee-runs")
def fee_run(req: FeeRunRequest, services: BillingServices = Depends(get_services)) -> dict:
    result = services.fee_run.run(req.run_date)
    return {"success": True, "total_amount": str(result.total_amount), **result.model_dump(mode="json")}


@router.get("/accounts/{account_id}/transactions")
def ledger_history(account_id: str, services: BillingServices = Depends(get_services)) -> dict:
    account = services.repos.accounts.get_account(account_id)
    entries = services.ledger.history(account_id)
    return {
        "success": True,
        "account_id": account_id,
        "balance": str(account.balance),
        "transactions": [t.model_dump(mode="json") for t in reversed(entries)],
    }
