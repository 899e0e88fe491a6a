"""Loan amortization engine.

Two repayment models share one validation path:

* interest-only loans pay a flat recurring amount equal to one period's
  interest and never amortize principal;
* fixed-installment loans pay a constant annuity and produce a full
  declining-balance schedule.

All arithmetic is done with ``Decimal`` inside a local context, so calls are
independent of each other and of the process-wide decimal context.
"""

import logging
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation, Overflow, localcontext
from typing import Optional, Tuple, Union

from pydantic import ValidationError

from exceptions import DegenerateTermsError, InvalidInputError
from schemas import (
    AmortizationResult,
    ClampPolicy,
    Installment,
    LoanSummary,
    LoanTerms,
    LoanType,
    ScheduleTotals,
)

logger = logging.getLogger(__name__)

DEFAULT_PRECISION = 28
ZERO = Decimal(0)

Number = Union[int, float, str, Decimal]


@contextmanager
def _working_context(precision: int):
    """Local decimal context; amounts past its exponent range are degenerate terms."""
    with localcontext() as ctx:
        ctx.prec = precision
        try:
            yield ctx
        except (Overflow, InvalidOperation) as exc:
            logger.warning("Amounts exceed the decimal range at precision %s", precision)
            raise DegenerateTermsError("amounts exceed the supported decimal range") from exc


def validate_terms(
    principal: Number,
    annual_rate_percent: Number,
    loan_type: Union[LoanType, str],
    installment_count: Optional[Number] = None,
) -> LoanTerms:
    """Validate raw loan inputs and return an immutable ``LoanTerms``.

    Raises ``InvalidInputError`` naming the first offending field.
    """
    try:
        return LoanTerms(
            principal=principal,
            annual_rate_percent=annual_rate_percent,
            loan_type=loan_type,
            installment_count=installment_count,
        )
    except ValidationError as exc:
        error = exc.errors()[0]
        field = str(error["loc"][0]) if error["loc"] else "terms"
        raise InvalidInputError(field, error["msg"]) from exc


def calculate_interest_only_payment(
    principal: Number,
    annual_rate_percent: Number,
    precision: int = DEFAULT_PRECISION,
) -> Decimal:
    """Return the recurring payment of an interest-only loan.

    The rate is applied once per payment period as given, with no division
    by twelve. Callers must pass a rate already expressed per payment
    period. This differs from the fixed-installment path, which converts an
    annual rate to a monthly one.
    """
    terms = validate_terms(principal, annual_rate_percent, LoanType.INTEREST_ONLY)
    with _working_context(precision):
        payment = terms.principal * (terms.annual_rate_percent / Decimal(100))

    logger.debug("Interest-only payment %s for principal %s", payment, terms.principal)
    return payment


def _monthly_rate_and_payment(terms: LoanTerms) -> Tuple[Decimal, Decimal]:
    # caller owns the decimal context
    monthly_rate = terms.annual_rate_percent / Decimal(100) / Decimal(12)
    if monthly_rate <= 0:
        logger.warning("Monthly rate underflows to zero for rate %s", terms.annual_rate_percent)
        raise DegenerateTermsError(
            f"monthly rate for {terms.annual_rate_percent}% is zero at working precision"
        )

    denominator = 1 - (1 + monthly_rate) ** -terms.installment_count
    if denominator == 0:
        logger.warning(
            "Annuity denominator is zero for rate %s over %s installments",
            terms.annual_rate_percent,
            terms.installment_count,
        )
        raise DegenerateTermsError(
            f"rate {terms.annual_rate_percent}% is too small to amortize "
            f"over {terms.installment_count} installments"
        )

    return monthly_rate, terms.principal * (monthly_rate / denominator)


def calculate_fixed_payment(
    principal: Number,
    annual_rate_percent: Number,
    installment_count: Number,
    precision: int = DEFAULT_PRECISION,
) -> Decimal:
    terms = validate_terms(
        principal, annual_rate_percent, LoanType.FIXED_INSTALLMENT, installment_count
    )
    with _working_context(precision):
        _, payment = _monthly_rate_and_payment(terms)
    return payment


def calculate_loan_schedule(
    principal: Number,
    annual_rate_percent: Number,
    installment_count: Number,
    clamp_policy: ClampPolicy = ClampPolicy.EVERY_PERIOD,
    precision: int = DEFAULT_PRECISION,
) -> AmortizationResult:
    """Build the declining-balance schedule of a fixed-installment loan.

    The monthly rate is ``annual_rate_percent / 100 / 12`` and the payment is
    the standard annuity ``P * r / (1 - (1 + r) ** -n)``, identical for every
    period. Each period charges interest on the outstanding balance and the
    rest of the payment reduces principal.

    With ``ClampPolicy.EVERY_PERIOD`` the balance is floored at zero after
    every period; with ``ClampPolicy.FINAL_PERIOD`` only after the last one.
    Either way the last period's principal portion is not adjusted, so it may
    not reconcile to the exact remaining balance.
    """
    terms = validate_terms(
        principal, annual_rate_percent, LoanType.FIXED_INSTALLMENT, installment_count
    )
    count = terms.installment_count
    schedule = []

    with _working_context(precision):
        monthly_rate, payment = _monthly_rate_and_payment(terms)

        remaining_balance = terms.principal
        for number in range(1, count + 1):
            interest_portion = remaining_balance * monthly_rate
            principal_portion = payment - interest_portion
            remaining_balance = remaining_balance - principal_portion
            if clamp_policy is ClampPolicy.EVERY_PERIOD or number == count:
                remaining_balance = max(ZERO, remaining_balance)

            schedule.append(
                Installment(
                    number=number,
                    payment=payment,
                    principal_portion=principal_portion,
                    interest_portion=interest_portion,
                    remaining_balance=remaining_balance,
                )
            )

    logger.debug(
        "Fixed-installment schedule: %s periods at %s, final balance %s",
        count,
        payment,
        remaining_balance,
    )
    return AmortizationResult(periodic_payment=payment, schedule=tuple(schedule))


def calculate_amortization(
    terms: LoanTerms,
    clamp_policy: ClampPolicy = ClampPolicy.EVERY_PERIOD,
    precision: int = DEFAULT_PRECISION,
) -> AmortizationResult:
    if terms.loan_type is LoanType.INTEREST_ONLY:
        payment = calculate_interest_only_payment(
            terms.principal, terms.annual_rate_percent, precision=precision
        )
        return AmortizationResult(periodic_payment=payment)
    if terms.loan_type is LoanType.FIXED_INSTALLMENT:
        return calculate_loan_schedule(
            terms.principal,
            terms.annual_rate_percent,
            terms.installment_count,
            clamp_policy=clamp_policy,
            precision=precision,
        )
    raise InvalidInputError("loan_type", f"unsupported loan type {terms.loan_type!r}")


def calculate_schedule_totals(
    result: AmortizationResult,
    principal: Decimal,
    precision: int = DEFAULT_PRECISION,
) -> Optional[ScheduleTotals]:
    if not result.schedule:
        return None

    with _working_context(precision):
        total_payment = result.periodic_payment * len(result.schedule)
        total_interest = sum((i.interest_portion for i in result.schedule), ZERO)

    return ScheduleTotals(
        total_payment=total_payment,
        total_principal=principal,
        total_interest=total_interest,
    )


def calculate_loan_summary(
    terms: LoanTerms,
    result: AmortizationResult,
    month_number: int,
    precision: int = DEFAULT_PRECISION,
) -> LoanSummary:
    """Position of the loan after ``month_number`` payments."""
    if month_number < 1:
        raise InvalidInputError("month_number", "must be at least 1")

    with _working_context(precision):
        total_paid = result.periodic_payment * month_number

        if terms.loan_type is LoanType.INTEREST_ONLY:
            return LoanSummary(
                current_principal_balance=terms.principal,
                aggregate_principal_paid=ZERO,
                aggregate_interest_paid=total_paid,
            )

        if month_number > len(result.schedule):
            raise InvalidInputError(
                "month_number", f"must not exceed {len(result.schedule)} installments"
            )

        current_principal_balance = result.schedule[month_number - 1].remaining_balance
        principal_paid = terms.principal - current_principal_balance
        interest_paid = total_paid - principal_paid

    return LoanSummary(
        current_principal_balance=current_principal_balance,
        aggregate_principal_paid=principal_paid,
        aggregate_interest_paid=interest_paid,
    )
