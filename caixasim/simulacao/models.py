"""
Data models for reconciled simulations.
Rows are insert-only: a new simulation supersedes, it never updates.
"""
from sqlalchemy import Integer, Float, String, DateTime, Text, Enum
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from typing import Any, List, Optional
from caixasim.core.database import Base
from caixasim.simulacao.schemas import ValidationStatus


def get_enum_values(enum_cls: Any) -> List[str]:
    """Helper to get values from an Enum class for SQLAlchemy."""
    return [e.value for e in enum_cls]


class SimulationRecord(Base):
    """Entity representing a simulation confirmed against the official quote."""

    __tablename__ = "simulacoes_caixa"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    status: Mapped[ValidationStatus] = mapped_column(
        "status_validacao",
        Enum(ValidationStatus, values_callable=get_enum_values),
        nullable=False
    )
    initial_installment: Mapped[float] = mapped_column("parcela_inicial", Float, nullable=False)
    official_installment: Mapped[float] = mapped_column("parcela_oficial", Float, nullable=False)
    delta: Mapped[float] = mapped_column("diferenca_parcela", Float, nullable=False)
    parameters: Mapped[str] = mapped_column("parametros", Text, nullable=False)  # Serialized JSON
    result: Mapped[str] = mapped_column("resultado", Text, nullable=False)  # Serialized JSON
    quote: Mapped[Optional[str]] = mapped_column("cotacao_oficial", Text, nullable=True)  # Serialized JSON
    created_at: Mapped[datetime] = mapped_column(
        "criado_em", DateTime, default=lambda: datetime.now(timezone.utc), index=True
    )
    correlation_id: Mapped[str] = mapped_column(String(100), index=True, nullable=True)

    def __repr__(self):
        return f"<SimulationRecord(id={self.id}, installment={self.initial_installment}, status={self.status})>"
