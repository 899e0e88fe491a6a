from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class LoanType(str, Enum):
    INTEREST_ONLY = "interest_only"
    FIXED_INSTALLMENT = "fixed_installment"


class ClampPolicy(str, Enum):
    EVERY_PERIOD = "every_period"
    FINAL_PERIOD = "final_period"


class LoanTerms(BaseModel):
    model_config = ConfigDict(frozen=True)

    principal: Decimal = Field(gt=0, allow_inf_nan=False, description="Loan amount (positive)")
    annual_rate_percent: Decimal = Field(
        gt=0, allow_inf_nan=False, description="Interest rate in percent, e.g. 12.5"
    )
    loan_type: LoanType
    installment_count: Optional[int] = Field(
        default=None,
        gt=0,
        validate_default=True,
        description="Number of installments, fixed-installment loans only",
    )

    @field_validator("principal", "annual_rate_percent", "installment_count", mode="before")
    @classmethod
    def reject_booleans(cls, value):
        # bool is an int subclass and would otherwise coerce to 0 or 1
        if isinstance(value, bool):
            raise ValueError("must be a number, not a boolean")
        return value

    @field_validator("installment_count")
    @classmethod
    def check_installment_count(cls, value: Optional[int], info: ValidationInfo) -> Optional[int]:
        loan_type = info.data.get("loan_type")
        if loan_type is LoanType.FIXED_INSTALLMENT and value is None:
            raise ValueError("required for fixed-installment loans")
        if loan_type is LoanType.INTEREST_ONLY:
            return None
        return value


class Installment(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    payment: Decimal
    principal_portion: Decimal
    interest_portion: Decimal
    remaining_balance: Decimal


class AmortizationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    periodic_payment: Decimal
    schedule: Tuple[Installment, ...] = ()


class ScheduleTotals(BaseModel):
    total_payment: Decimal
    total_principal: Decimal
    total_interest: Decimal


class LoanSummary(BaseModel):
    current_principal_balance: Decimal
    aggregate_principal_paid: Decimal
    aggregate_interest_paid: Decimal


class AmortizationResponse(BaseModel):
    loan_type: LoanType
    periodic_payment: Decimal
    schedule: List[Installment]
    totals: Optional[ScheduleTotals] = None
