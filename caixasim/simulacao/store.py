"""
Persistence gate for reconciled simulations.
Only simulations that match the official installment are accepted.
"""
import json
from typing import List, Optional

from sqlalchemy.orm import Session

from caixasim.core.config import settings
from caixasim.core.errors import NotReconciled
from caixasim.core.logger import audit_log, logger
from caixasim.core.utils import format_brasilia_time
from caixasim.caixa.schemas import AuthoritativeQuote
from caixasim.simulacao.models import SimulationRecord
from caixasim.simulacao.reconciliation import reconcile
from caixasim.simulacao.service import simulate
from caixasim.simulacao.schemas import (
    LocalSimulationResult,
    ReconciledSimulation,
    SavedSimulationResponse,
    SimulationParameters,
    ValidationStatus,
)


class SimulationStore:
    """Collaborator boundary towards the CRM: accept, list and fetch confirmed simulations."""

    def __init__(self, db: Session, tolerance: float = settings.RECONCILIATION_TOLERANCE):
        self.db = db
        self.tolerance = tolerance

    def accept(self, submitted: ReconciledSimulation, correlation_id: Optional[str] = None) -> SimulationRecord:
        """
        Recomputes the local result and re-classifies it (submitted status and
        numbers are not trusted), persisting only confirmed simulations.
        """
        checked = reconcile(
            submitted.parameters,
            simulate(submitted.parameters),
            quote=submitted.quote,
            official_installment=submitted.official_installment,
            tolerance=self.tolerance,
        )

        if checked.status == ValidationStatus.UNVERIFIED:
            raise NotReconciled("Provide the official installment to save a verified simulation")
        if checked.status != ValidationStatus.CONFIRMED:
            raise NotReconciled("Simulation diverges from the official installment. Adjust the parameters before saving")

        record = SimulationRecord(
            status=checked.status,
            initial_installment=checked.result.initial_installment,
            official_installment=checked.official_installment,
            delta=checked.delta,
            parameters=checked.parameters.model_dump_json(),
            result=checked.result.model_dump_json(),
            quote=checked.quote.model_dump_json() if checked.quote else None,
            correlation_id=correlation_id,
        )

        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)

        audit_log(
            action="simulation_saved",
            user="system",
            resource=f"simulation_id={record.id}",
            details={
                "correlation_id": correlation_id,
                "initial_installment": record.initial_installment,
                "official_installment": record.official_installment,
                "delta": record.delta,
            }
        )
        logger.info(f"Simulation persisted: id={record.id}")

        return record

    def list(self, limit: int = settings.HISTORY_LIMIT) -> List[SimulationRecord]:
        return (
            self.db.query(SimulationRecord)
            .order_by(SimulationRecord.created_at.desc(), SimulationRecord.id.desc())
            .limit(limit)
            .all()
        )

    def get(self, simulation_id: int) -> Optional[SimulationRecord]:
        return self.db.query(SimulationRecord).filter(SimulationRecord.id == simulation_id).first()


def to_response(record: SimulationRecord) -> SavedSimulationResponse:
    return SavedSimulationResponse(
        simulation_id=record.id,
        status=record.status,
        initial_installment=record.initial_installment,
        official_installment=record.official_installment,
        delta=record.delta,
        parameters=SimulationParameters(**json.loads(record.parameters)),
        result=LocalSimulationResult(**json.loads(record.result)),
        quote=AuthoritativeQuote(**json.loads(record.quote)) if record.quote else None,
        created_at=record.created_at,
        created_at_display=format_brasilia_time(record.created_at),
    )
