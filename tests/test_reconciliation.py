"""
Unit tests for reconciliation and the persistence gate.
"""
import pytest
from unittest.mock import MagicMock

from caixasim.caixa.schemas import AuthoritativeQuote
from caixasim.core.errors import NotReconciled, RemoteBlocked, RemoteNetworkError
from caixasim.simulacao.reconciliation import classify, reconcile, run_reconciled_simulation
from caixasim.simulacao.schemas import AmortizationSystem, ValidationStatus
from caixasim.simulacao.service import simulate
from caixasim.simulacao.store import SimulationStore


def _quote(installment: float, **overrides) -> AuthoritativeQuote:
    data = dict(
        installment=installment,
        term_months=360,
        financed_amount=360000.0,
        nominal_annual_rate=10.5,
        monthly_insurance=320.0,
        monthly_admin_fee=25.0,
        amortization_code=29,
        amortization_name="PRICE",
    )
    data.update(overrides)
    return AuthoritativeQuote(**data)


@pytest.mark.parametrize("offset, expected", [
    (0.0, ValidationStatus.CONFIRMED),
    (0.01, ValidationStatus.CONFIRMED),
    (-0.01, ValidationStatus.CONFIRMED),
    (0.02, ValidationStatus.DIVERGENT),
    (-15.0, ValidationStatus.DIVERGENT),
])
def test_classify_tolerance(base_params, offset: float, expected: ValidationStatus):
    result = simulate(base_params)
    status, delta = classify(result, result.initial_installment + offset)

    assert status == expected
    assert delta == pytest.approx(-offset, abs=1e-9)


@pytest.mark.parametrize("official", [None, 0.0, -10.0])
def test_classify_without_official_value(base_params, official):
    status, delta = classify(simulate(base_params), official)

    assert status == ValidationStatus.UNVERIFIED
    assert delta is None


def test_manual_official_installment(base_params):
    result = simulate(base_params)
    reconciled = run_reconciled_simulation(base_params, official_installment=result.initial_installment)

    assert reconciled.status == ValidationStatus.CONFIRMED
    assert reconciled.official_installment == result.initial_installment
    assert reconciled.quote is None
    assert reconciled.warnings == []


def test_divergence_adds_review_warning(base_params):
    result = simulate(base_params)
    reconciled = reconcile(base_params, result, official_installment=result.initial_installment + 50)

    assert reconciled.status == ValidationStatus.DIVERGENT
    assert reconciled.delta == -50.0
    assert len(reconciled.warnings) == 1


def test_remote_failure_keeps_local_result(base_params):
    """A failing authority degrades to an unverified local answer."""
    client = MagicMock()
    client.fetch_quote.side_effect = RemoteNetworkError("Could not reach remote simulator: ConnectionError")

    reconciled = run_reconciled_simulation(base_params, client=client)

    assert reconciled.status == ValidationStatus.UNVERIFIED
    assert reconciled.result == simulate(base_params)
    assert reconciled.remote_error.kind == "NetworkError"
    assert "ConnectionError" in reconciled.remote_error.detail


def test_remote_block_falls_back_to_manual_value(base_params):
    client = MagicMock()
    client.fetch_quote.side_effect = RemoteBlocked("blocked")
    result = simulate(base_params)

    reconciled = run_reconciled_simulation(base_params, client=client,
                                           official_installment=result.initial_installment)

    assert reconciled.status == ValidationStatus.CONFIRMED
    assert reconciled.remote_error.kind == "RemoteBlocked"


def test_matching_quote_confirms(base_params):
    expected = simulate(base_params).initial_installment
    client = MagicMock()
    client.fetch_quote.return_value = _quote(expected)

    reconciled = run_reconciled_simulation(base_params, client=client)

    assert reconciled.status == ValidationStatus.CONFIRMED
    assert reconciled.delta == 0.0
    assert reconciled.quote.installment == expected
    assert reconciled.remote_error is None


def test_quote_terms_are_reapplied(base_params):
    """The local result is recomputed with the authority's own term and rate."""
    quote_params = base_params.model_copy(update={"term_months": 420, "annual_contract_rate": 11.0})
    expected = simulate(quote_params).initial_installment
    client = MagicMock()
    client.fetch_quote.return_value = _quote(expected, term_months=420, nominal_annual_rate=11.0)

    reconciled = run_reconciled_simulation(base_params, client=client)

    assert reconciled.parameters.term_months == 420
    assert reconciled.parameters.annual_contract_rate == 11.0
    assert reconciled.status == ValidationStatus.CONFIRMED


def test_quote_terms_outside_local_limits_keep_caller_parameters(base_params):
    client = MagicMock()
    client.fetch_quote.return_value = _quote(3000.0, term_months=480)

    reconciled = run_reconciled_simulation(base_params, client=client)

    assert reconciled.parameters.term_months == 360
    assert reconciled.result == simulate(base_params)
    assert reconciled.status == ValidationStatus.DIVERGENT


def test_sac_request_answered_with_price_is_divergent(base_params):
    params = base_params.model_copy(update={"amortization_system": AmortizationSystem.SAC})
    expected = simulate(params).initial_installment
    client = MagicMock()
    client.fetch_quote.return_value = _quote(expected, amortization_code=29, amortization_name="PRICE")

    reconciled = run_reconciled_simulation(params, client=client)

    assert reconciled.delta == 0.0
    assert reconciled.status == ValidationStatus.DIVERGENT
    assert any("PRICE" in warning for warning in reconciled.warnings)


def test_sac_quote_without_system_code_is_divergent(base_params):
    params = base_params.model_copy(update={"amortization_system": AmortizationSystem.SAC})
    expected = simulate(params).initial_installment
    client = MagicMock()
    client.fetch_quote.return_value = _quote(expected, amortization_code=None, amortization_name=None)

    reconciled = run_reconciled_simulation(params, client=client)

    assert reconciled.status == ValidationStatus.DIVERGENT


def test_sac_quote_with_sac_code_confirms(base_params):
    params = base_params.model_copy(update={"amortization_system": AmortizationSystem.SAC})
    expected = simulate(params).initial_installment
    client = MagicMock()
    client.fetch_quote.return_value = _quote(expected, amortization_code=30, amortization_name="SAC")

    reconciled = run_reconciled_simulation(params, client=client)

    assert reconciled.status == ValidationStatus.CONFIRMED
    assert reconciled.warnings == []


@pytest.mark.parametrize("official_offset", [None, 0.5])
def test_store_rejects_unconfirmed(base_params, official_offset):
    result = simulate(base_params)
    official = None if official_offset is None else result.initial_installment + official_offset
    db_mock = MagicMock()

    with pytest.raises(NotReconciled) as excinfo:
        SimulationStore(db_mock).accept(reconcile(base_params, result, official_installment=official))

    assert excinfo.value.status_code == 409
    db_mock.add.assert_not_called()


def test_store_ignores_forged_status(base_params):
    """A client claiming 'conferido' for diverging numbers is still rejected."""
    result = simulate(base_params)
    forged = reconcile(base_params, result, official_installment=result.initial_installment + 100).model_copy(
        update={"status": ValidationStatus.CONFIRMED, "delta": 0.0}
    )
    db_mock = MagicMock()

    with pytest.raises(NotReconciled):
        SimulationStore(db_mock).accept(forged)

    db_mock.commit.assert_not_called()


def test_store_persists_confirmed(base_params):
    result = simulate(base_params)
    reconciled = reconcile(base_params, result, official_installment=result.initial_installment)
    db_mock = MagicMock()

    record = SimulationStore(db_mock).accept(reconciled, "corr-123")

    db_mock.add.assert_called_once_with(record)
    db_mock.commit.assert_called_once()
    assert record.status == ValidationStatus.CONFIRMED
    assert record.delta == 0.0
    assert record.correlation_id == "corr-123"
    assert record.quote is None
