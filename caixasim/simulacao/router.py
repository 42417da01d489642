"""
FastAPI Router for reconciled housing-loan simulations.
Local simulation always answers; the official check and persistence are layered on top.
"""
from typing import List
from uuid import uuid4

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.orm import Session

from caixasim.caixa.client import CaixaClient
from caixasim.caixa.dependencies import call_cancellable, get_caixa_client
from caixasim.core.config import settings
from caixasim.core.database import get_db
from caixasim.core.logger import get_logger_with_correlation
from caixasim.simulacao.reconciliation import run_reconciled_simulation
from caixasim.simulacao.schemas import ReconciledSimulation, SavedSimulationResponse, SimulationRequest
from caixasim.simulacao.store import SimulationStore, to_response

router = APIRouter(tags=["Simulation"])


@router.post("/simulate", response_model=ReconciledSimulation)
async def simulate_financing(
    request: Request,
    data: SimulationRequest,
    client: CaixaClient = Depends(get_caixa_client),
    x_correlation_id: str = Header(default=None)
) -> ReconciledSimulation:
    """
    **Reconciled simulation**

    Computes Price or SAC locally and, optionally, checks it against the official quote.

    - **consult_official**: fetch the official installment from the remote simulator
    - **official_installment**: manually entered official installment (R$)

    **Returns:**
    - Local result, official quote (when available) and validation status
    """
    correlation_id = x_correlation_id or str(uuid4())
    logger = get_logger_with_correlation(correlation_id)

    logger.info(f"Starting simulation: {data.model_dump(mode='json')}")
    reconciled = await call_cancellable(
        request,
        run_reconciled_simulation,
        data.to_parameters(),
        client=client if data.consult_official else None,
        official_installment=data.official_installment,
    )
    logger.info(
        f"Simulation completed: status={reconciled.status.value}, "
        f"installment={reconciled.result.initial_installment}, delta={reconciled.delta}"
    )
    return reconciled


@router.post("/salvar", response_model=SavedSimulationResponse, status_code=201)
def save_simulation(
    data: ReconciledSimulation,
    db: Session = Depends(get_db),
    x_correlation_id: str = Header(default=None)
) -> SavedSimulationResponse:
    """
    Persists a simulation. Only simulations confirmed against the official installment are accepted.
    """
    correlation_id = x_correlation_id or str(uuid4())
    record = SimulationStore(db).accept(data, correlation_id)
    return to_response(record)


@router.get("/historico", response_model=List[SavedSimulationResponse])
def list_history(
    limit: int = Query(settings.HISTORY_LIMIT, ge=1, le=500),
    db: Session = Depends(get_db)
) -> List[SavedSimulationResponse]:
    """Most recent confirmed simulations first."""
    return [to_response(record) for record in SimulationStore(db).list(limit)]


@router.get("/historico/{simulation_id}", response_model=SavedSimulationResponse)
def get_simulation(
    simulation_id: int,
    db: Session = Depends(get_db)
) -> SavedSimulationResponse:
    """
    Retrieves a saved simulation by ID for audit purposes.
    """
    record = SimulationStore(db).get(simulation_id)
    if not record:
        raise HTTPException(status_code=404, detail="Simulation not found")
    return to_response(record)
