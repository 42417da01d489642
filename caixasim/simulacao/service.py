"""
Local amortization engine.
Implements the Price (constant installment) and SAC (constant amortization)
systems with the contract rate compounded over the TR correction index.
Pure functions: no I/O, no shared state.
"""
import math
from typing import Optional

from caixasim.caixa.schemas import AuthoritativeQuote
from caixasim.core.errors import InvalidParameter
from caixasim.simulacao.schemas import AmortizationSystem, LocalSimulationResult, SimulationParameters

MIN_TERM_MONTHS = 12
MAX_TERM_MONTHS = 420
MAX_ANNUAL_CONTRACT_RATE = 40.0
MAX_ANNUAL_INDEX_RATE = 20.0

AMOUNT_FIELDS = (
    "property_value", "down_payment", "subsidy", "financed_expenses", "monthly_income",
    "monthly_insurance", "monthly_admin_fee",
)


def validate_parameters(params: SimulationParameters) -> None:
    """Raises InvalidParameter for the first violated precondition."""
    for field_name in AMOUNT_FIELDS + ("annual_contract_rate", "annual_index_rate"):
        if not math.isfinite(getattr(params, field_name)):
            raise InvalidParameter(f"{field_name} must be a finite number")

    if params.property_value <= 0:
        raise InvalidParameter("Property value must be greater than zero")

    for field_name in AMOUNT_FIELDS[1:]:
        if getattr(params, field_name) < 0:
            raise InvalidParameter(f"{field_name} cannot be negative")

    if not MIN_TERM_MONTHS <= params.term_months <= MAX_TERM_MONTHS:
        raise InvalidParameter(f"Term must be between {MIN_TERM_MONTHS} and {MAX_TERM_MONTHS} months")
    if not 0 <= params.annual_contract_rate <= MAX_ANNUAL_CONTRACT_RATE:
        raise InvalidParameter("Invalid annual contract rate")
    if not 0 <= params.annual_index_rate <= MAX_ANNUAL_INDEX_RATE:
        raise InvalidParameter("Invalid annual correction index rate")

    if financed_amount(params) <= 0:
        raise InvalidParameter("Financed amount must be greater than zero")


def financed_amount(params: SimulationParameters) -> float:
    return params.property_value + params.financed_expenses - params.down_payment - params.subsidy


def monthly_rate(annual_percent: float) -> float:
    """Converts an annual percentage into the equivalent compound monthly rate."""
    return (1 + annual_percent / 100) ** (1 / 12) - 1


def simulate(params: SimulationParameters) -> LocalSimulationResult:
    """
    Computes the installment schedule summary.

    Price:  PMT = PV * [i * (1+i)^n] / [(1+i)^n - 1]
    SAC:    A = PV / n; first = A + PV * i; last = A + A * i
    """
    validate_parameters(params)

    principal = financed_amount(params)
    term = params.term_months

    contract_rate = monthly_rate(params.annual_contract_rate)
    index_rate = monthly_rate(params.annual_index_rate)
    rate = (1 + contract_rate) * (1 + index_rate) - 1

    if params.amortization_system == AmortizationSystem.PRICE:
        if rate <= 0:
            first_base = principal / term
        else:
            factor = (1 + rate) ** term
            first_base = principal * (rate * factor) / (factor - 1)
        last_base = first_base
        total_base = first_base * term
    else:
        amortization = principal / term
        first_base = amortization + principal * rate
        last_base = amortization + amortization * rate
        # Linear schedule: the mean of first and last is the mean installment
        total_base = (first_base + last_base) / 2 * term

    fixed_charges = params.monthly_insurance + params.monthly_admin_fee
    first_installment = first_base + fixed_charges
    last_installment = last_base + fixed_charges
    total_fixed = fixed_charges * term

    income_commitment: Optional[float] = None
    if params.monthly_income > 0:
        income_commitment = round(first_installment / params.monthly_income, 6)

    return LocalSimulationResult(
        financed_amount=round(principal, 2),
        monthly_contract_rate=contract_rate,
        monthly_index_rate=index_rate,
        effective_monthly_rate=rate,
        initial_base_installment=round(first_base, 2),
        final_base_installment=round(last_base, 2),
        initial_installment=round(first_installment, 2),
        final_installment=round(last_installment, 2),
        average_installment=round((first_installment + last_installment) / 2, 2),
        total_paid=round(total_base + total_fixed, 2),
        total_interest=round(total_base - principal, 2),
        total_fixed_charges=round(total_fixed, 2),
        income_commitment=income_commitment,
    )


def apply_quote(params: SimulationParameters, quote: AuthoritativeQuote) -> SimulationParameters:
    """
    Returns parameters carrying the authority's term, nominal rate and fixed charges,
    keeping the caller's values wherever the quote reports nothing usable.
    """
    updates = {"term_months": quote.term_months}
    if quote.nominal_annual_rate and quote.nominal_annual_rate > 0:
        updates["annual_contract_rate"] = quote.nominal_annual_rate
    if quote.monthly_insurance > 0:
        updates["monthly_insurance"] = quote.monthly_insurance
    if quote.monthly_admin_fee > 0:
        updates["monthly_admin_fee"] = quote.monthly_admin_fee
    return params.model_copy(update=updates)
