"""
Unit tests for the local amortization engine.
Validates Price and SAC schedules, fixed charges and parameter validation.
"""
import math

import pytest
from caixasim.caixa.schemas import AuthoritativeQuote
from caixasim.core.errors import InvalidParameter
from caixasim.simulacao.schemas import AmortizationSystem
from caixasim.simulacao.service import apply_quote, monthly_rate, simulate


def test_price_reference_scenario(base_params):
    """450k property, 90k down, 360 months, 10.5% a.a., no TR, R$ 345 of monthly charges."""
    result = simulate(base_params)

    r = (1 + 10.5 / 100) ** (1 / 12) - 1
    factor = (1 + r) ** 360
    expected_base = 360000.0 * (r * factor) / (factor - 1)

    assert result.financed_amount == 360000.0
    assert result.initial_base_installment == round(expected_base, 2)
    assert result.initial_installment == round(expected_base + 345.0, 2)
    assert 3400 < result.initial_installment < 3600


def test_price_is_deterministic(base_params):
    """Same inputs always reproduce the same output to the cent."""
    first = simulate(base_params)
    second = simulate(base_params.model_copy())

    assert first == second


def test_price_installment_constant(base_params):
    result = simulate(base_params)

    assert result.initial_base_installment == result.final_base_installment
    assert result.initial_installment == result.final_installment == result.average_installment


@pytest.mark.parametrize("rate", [0.5, 6.0, 10.5, 18.0])
def test_price_interest_non_negative(base_params, rate: float):
    result = simulate(base_params.model_copy(update={"annual_contract_rate": rate}))

    assert result.total_interest > 0


def test_price_zero_rate_splits_principal(base_params):
    params = base_params.model_copy(update={"annual_contract_rate": 0.0, "monthly_insurance": 0.0,
                                            "monthly_admin_fee": 0.0})
    result = simulate(params)

    assert result.effective_monthly_rate == 0
    assert result.initial_installment == 1000.0
    assert result.total_interest == 0.0


def test_sac_decreasing_schedule(base_params):
    params = base_params.model_copy(update={"amortization_system": AmortizationSystem.SAC})
    result = simulate(params)

    amortization = 360000.0 / 360
    rate = monthly_rate(10.5)

    assert result.initial_base_installment == round(amortization + 360000.0 * rate, 2)
    assert result.final_base_installment == round(amortization + amortization * rate, 2)
    assert result.initial_installment > result.final_installment


def test_sac_zero_rate_flat(base_params):
    params = base_params.model_copy(update={
        "amortization_system": AmortizationSystem.SAC,
        "annual_contract_rate": 0.0,
    })
    result = simulate(params)

    assert result.initial_base_installment == result.final_base_installment == 1000.0


def test_sac_pays_less_interest_than_price(base_params):
    price = simulate(base_params)
    sac = simulate(base_params.model_copy(update={"amortization_system": AmortizationSystem.SAC}))

    assert sac.total_interest < price.total_interest


def test_index_rate_compounds_with_contract_rate(base_params):
    params = base_params.model_copy(update={"annual_index_rate": 2.0})
    result = simulate(params)

    expected = (1 + monthly_rate(10.5)) * (1 + monthly_rate(2.0)) - 1
    assert result.effective_monthly_rate == pytest.approx(expected)
    assert result.initial_installment > simulate(base_params).initial_installment


def test_fixed_charges_totals(base_params):
    result = simulate(base_params)

    assert result.total_fixed_charges == 345.0 * 360
    assert result.total_paid == pytest.approx(
        result.financed_amount + result.total_interest + result.total_fixed_charges, abs=0.02
    )


def test_income_commitment(base_params):
    result = simulate(base_params)
    assert result.income_commitment == pytest.approx(result.initial_installment / 12000.0, abs=1e-4)

    no_income = simulate(base_params.model_copy(update={"monthly_income": 0.0}))
    assert no_income.income_commitment is None


def test_financed_amount_includes_expenses_and_subsidy(base_params):
    params = base_params.model_copy(update={"financed_expenses": 15000.0, "subsidy": 5000.0})

    assert simulate(params).financed_amount == 370000.0


@pytest.mark.parametrize("update", [
    {"property_value": 0.0},
    {"property_value": -1.0},
    {"down_payment": -10.0},
    {"subsidy": -1.0},
    {"monthly_insurance": -5.0},
    {"term_months": 11},
    {"term_months": 421},
    {"annual_contract_rate": 41.0},
    {"annual_index_rate": -0.1},
    {"down_payment": 450000.0},  # financed amount zero
    {"down_payment": 400000.0, "subsidy": 60000.0},  # financed amount negative
    {"property_value": math.nan},
    {"property_value": math.inf},
    {"down_payment": math.nan},
    {"monthly_income": math.inf},
    {"monthly_insurance": -math.inf},
    {"annual_contract_rate": math.nan},
    {"annual_index_rate": math.nan},
])
def test_invalid_parameters_rejected(base_params, update):
    """Violations raise InvalidParameter instead of producing NaN or negative results."""
    with pytest.raises(InvalidParameter):
        simulate(base_params.model_copy(update=update))


@pytest.mark.parametrize("term", [12, 420])
def test_term_boundaries_accepted(base_params, term: int):
    result = simulate(base_params.model_copy(update={"term_months": term}))

    assert result.initial_installment > 0


def test_apply_quote_takes_authority_terms(base_params):
    quote = AuthoritativeQuote(
        installment=3600.0,
        term_months=420,
        financed_amount=360000.0,
        nominal_annual_rate=11.29,
        monthly_insurance=150.0,
        monthly_admin_fee=0.0,
    )
    updated = apply_quote(base_params, quote)

    assert updated.term_months == 420
    assert updated.annual_contract_rate == 11.29
    assert updated.monthly_insurance == 150.0
    # Non-positive values from the quote keep the caller's own
    assert updated.monthly_admin_fee == 25.0
    assert base_params.term_months == 360
