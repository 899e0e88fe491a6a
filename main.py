import logging
from contextlib import asynccontextmanager
from decimal import ROUND_HALF_UP, Decimal, localcontext
from functools import lru_cache

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from config import EngineConfig
from engine import (
    calculate_amortization,
    calculate_loan_summary,
    calculate_schedule_totals,
)
from exceptions import AmortizationError, DegenerateTermsError, InvalidInputError
from logging_config import setup_logging
from schemas import (
    AmortizationResponse,
    Installment,
    LoanSummary,
    LoanTerms,
    ScheduleTotals,
)

logger = logging.getLogger(__name__)


@lru_cache
def get_config() -> EngineConfig:
    return EngineConfig.from_env()


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    setup_logging(config.log_level, config.log_format)
    logger.info(
        "Amortization service starting (precision=%s, clamp=%s)",
        config.decimal_precision,
        config.clamp_policy.value,
    )
    yield


app = FastAPI(title="Loan amortization", lifespan=lifespan)


async def amortization_error_handler(request: Request, exc: AmortizationError):
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=422, content={"detail": str(exc), "field": exc.field})


# ConfigurationError is a server fault and stays a 500
app.add_exception_handler(InvalidInputError, amortization_error_handler)
app.add_exception_handler(DegenerateTermsError, amortization_error_handler)


def quantize(value: Decimal, quantum: Decimal) -> Decimal:
    # quantize needs every digit of the result to fit in the context precision
    digits = value.adjusted() - quantum.as_tuple().exponent + 1
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, digits)
        return value.quantize(quantum, rounding=ROUND_HALF_UP)


def quantize_installment(installment: Installment, quantum: Decimal) -> Installment:
    return Installment(
        number=installment.number,
        payment=quantize(installment.payment, quantum),
        principal_portion=quantize(installment.principal_portion, quantum),
        interest_portion=quantize(installment.interest_portion, quantum),
        remaining_balance=quantize(installment.remaining_balance, quantum),
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/amortization", response_model=AmortizationResponse)
async def create_amortization(terms: LoanTerms, config: EngineConfig = Depends(get_config)):
    result = calculate_amortization(
        terms, clamp_policy=config.clamp_policy, precision=config.decimal_precision
    )
    totals = calculate_schedule_totals(
        result, terms.principal, precision=config.decimal_precision
    )

    quantum = config.quantum
    if totals is not None:
        totals = ScheduleTotals(
            total_payment=quantize(totals.total_payment, quantum),
            total_principal=quantize(totals.total_principal, quantum),
            total_interest=quantize(totals.total_interest, quantum),
        )

    return AmortizationResponse(
        loan_type=terms.loan_type,
        periodic_payment=quantize(result.periodic_payment, quantum),
        schedule=[quantize_installment(i, quantum) for i in result.schedule],
        totals=totals,
    )


@app.post("/amortization/summary", response_model=LoanSummary)
async def get_amortization_summary(
    terms: LoanTerms,
    month_number: int = Query(...),
    config: EngineConfig = Depends(get_config),
):
    result = calculate_amortization(
        terms, clamp_policy=config.clamp_policy, precision=config.decimal_precision
    )
    summary = calculate_loan_summary(
        terms, result, month_number, precision=config.decimal_precision
    )

    quantum = config.quantum
    return LoanSummary(
        current_principal_balance=quantize(summary.current_principal_balance, quantum),
        aggregate_principal_paid=quantize(summary.aggregate_principal_paid, quantum),
        aggregate_interest_paid=quantize(summary.aggregate_interest_paid, quantum),
    )
