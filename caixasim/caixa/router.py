"""
FastAPI Router for the remote lending authority.
Proxies the official simulator and its city list behind typed responses.
"""
from typing import Annotated, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Header, Query, Request

from caixasim.caixa.client import CaixaClient
from caixasim.caixa.dependencies import call_cancellable, get_caixa_client
from caixasim.caixa.schemas import AuthoritativeQuote, CityListResponse
from caixasim.core.errors import InvalidParameter
from caixasim.core.logger import audit_log, get_logger_with_correlation
from caixasim.core.utils import normalize_uf
from caixasim.simulacao.schemas import SimulationParameters

router = APIRouter(tags=["CAIXA"])


@router.post("/simulate", response_model=AuthoritativeQuote)
async def official_simulation(
    request: Request,
    params: SimulationParameters,
    client: CaixaClient = Depends(get_caixa_client),
    x_correlation_id: Annotated[Optional[str], Header()] = None
) -> AuthoritativeQuote:
    """
    **Official quote**

    Runs the remote simulator (session init, product framing, DWR simulation).

    - **property_value**, **monthly_income**, **city_code**: required by the remote

    **Returns:**
    - Official installment, term, rates and fixed charges
    """
    correlation_id = x_correlation_id or str(uuid4())
    logger = get_logger_with_correlation(correlation_id)

    if params.property_value <= 0 or params.monthly_income <= 0 or not params.city_code:
        raise InvalidParameter("Property value, income and city are required for the official quote")

    logger.info(f"Requesting official quote: uf={params.uf}, city={params.city_code}, "
                f"system={params.amortization_system.value}")
    quote = await call_cancellable(request, client.fetch_quote, params)

    audit_log(
        action="official_quote",
        user="system",
        resource=f"uf={params.uf}",
        details={"correlation_id": correlation_id, "installment": quote.installment}
    )
    return quote


@router.get("/cidades", response_model=CityListResponse)
async def list_cities(
    request: Request,
    uf: str = Query("SP", description="Two-letter state code"),
    client: CaixaClient = Depends(get_caixa_client),
    x_correlation_id: Annotated[Optional[str], Header()] = None
) -> CityListResponse:
    """
    Lists the cities the remote simulator accepts for a state. Cached per UF.
    """
    correlation_id = x_correlation_id or str(uuid4())
    logger = get_logger_with_correlation(correlation_id)

    cities = await call_cancellable(request, client.lookup_cities, uf)
    logger.info(f"City lookup for {uf}: {len(cities)} cities")
    return CityListResponse(uf=normalize_uf(uf), data=cities)
