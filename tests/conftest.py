import os

# Must be set before caixasim.core.database creates its engine
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402

from caixasim.simulacao.schemas import AmortizationSystem, SimulationParameters  # noqa: E402


class FakeResponse:
    """Stands in for requests.Response with the attributes the session client reads."""

    def __init__(self, status_code: int = 200, text: str = "", headers=None, cookies=None):
        self.status_code = status_code
        self.text = text
        self.headers = dict(headers or {})
        self.raw = _FakeRaw(cookies or [])


class _FakeRaw:
    def __init__(self, cookies):
        self.headers = _FakeRawHeaders(cookies)


class _FakeRawHeaders:
    def __init__(self, cookies):
        self._cookies = list(cookies)

    def getlist(self, name: str):
        return list(self._cookies) if name.lower() == "set-cookie" else []


@pytest.fixture
def base_params() -> SimulationParameters:
    return SimulationParameters(
        property_value=450000.0,
        down_payment=90000.0,
        term_months=360,
        monthly_income=12000.0,
        uf="SP",
        city_code="3550308",
        amortization_system=AmortizationSystem.PRICE,
        annual_contract_rate=10.5,
        annual_index_rate=0.0,
        monthly_insurance=320.0,
        monthly_admin_fee=25.0,
    )


@pytest.fixture
def fake_response():
    return FakeResponse
