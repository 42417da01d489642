"""
Pydantic schemas for local simulations and their reconciliation.
Schemas only coerce types; domain limits are enforced by the engine so that
violations surface as InvalidParameter errors.
"""
import enum
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from caixasim.caixa.schemas import AuthoritativeQuote
from caixasim.core.utils import normalize_uf


class PersonType(str, enum.Enum):
    """Borrower type."""
    INDIVIDUAL = "F"
    CORPORATE = "J"


class AmortizationSystem(str, enum.Enum):
    PRICE = "price"  # constant installment
    SAC = "sac"  # constant amortization


class ValidationStatus(str, enum.Enum):
    """Outcome of comparing the local installment against the authority."""
    UNVERIFIED = "sem_conferencia"
    CONFIRMED = "conferido"
    DIVERGENT = "divergente"


class SimulationParameters(BaseModel):
    """Housing-loan simulation inputs."""
    property_value: float = Field(..., description="Property value (R$)")
    down_payment: float = Field(0.0, description="Own resources / down payment (R$)")
    subsidy: float = Field(0.0, description="Subsidy deducted from the financed amount (R$)")
    financed_expenses: float = Field(0.0, description="Expenses added to the financed amount (R$)")
    term_months: int = Field(360, description="Term in months (12-420)")
    monthly_income: float = Field(0.0, description="Gross monthly family income (R$)")
    birth_date: Optional[date] = Field(None, description="Borrower birth date")
    uf: str = Field("SP", description="Two-letter state code")
    city_code: str = Field("3550308", description="Remote city code")
    person_type: PersonType = Field(PersonType.INDIVIDUAL, description="F (individual) or J (corporate)")
    property_type: str = Field("1", description="Remote property type code")
    financing_group: str = Field("1", description="Remote financing category code")
    amortization_system: AmortizationSystem = Field(AmortizationSystem.PRICE, description="price or sac")
    annual_contract_rate: float = Field(10.5, description="Nominal contract rate (% a.a.)")
    annual_index_rate: float = Field(0.0, description="Correction index, TR (% a.a.)")
    monthly_insurance: float = Field(0.0, description="Monthly insurance (R$)")
    monthly_admin_fee: float = Field(0.0, description="Monthly administrative fee (R$)")

    @field_validator("uf")
    @classmethod
    def normalize_state(cls, v: str) -> str:
        return normalize_uf(v)

    @field_validator("city_code", "property_type", "financing_group")
    @classmethod
    def strip_codes(cls, v: str) -> str:
        return v.strip()


class LocalSimulationResult(BaseModel):
    """Locally computed schedule summary."""
    financed_amount: float
    monthly_contract_rate: float
    monthly_index_rate: float
    effective_monthly_rate: float
    initial_base_installment: float
    final_base_installment: float
    initial_installment: float = Field(..., description="First installment including fixed charges")
    final_installment: float = Field(..., description="Last installment including fixed charges")
    average_installment: float
    total_paid: float
    total_interest: float
    total_fixed_charges: float
    income_commitment: Optional[float] = Field(None, description="Initial installment / monthly income")

    model_config = ConfigDict(frozen=True)


class RemoteErrorInfo(BaseModel):
    kind: str
    detail: str


class ReconciledSimulation(BaseModel):
    """Local result merged with the authoritative value it was checked against."""
    parameters: SimulationParameters
    result: LocalSimulationResult
    quote: Optional[AuthoritativeQuote] = None
    official_installment: Optional[float] = Field(None, description="Installment used as reference (R$)")
    status: ValidationStatus = ValidationStatus.UNVERIFIED
    delta: Optional[float] = Field(None, description="Local initial installment minus official installment")
    warnings: List[str] = Field(default_factory=list)
    remote_error: Optional[RemoteErrorInfo] = None


class SimulationRequest(SimulationParameters):
    """Simulation request payload."""
    consult_official: bool = Field(False, description="Fetch the authoritative quote from the remote")
    official_installment: Optional[float] = Field(None, description="Manually entered official installment")

    def to_parameters(self) -> SimulationParameters:
        return SimulationParameters(**self.model_dump(exclude={"consult_official", "official_installment"}))


class SavedSimulationResponse(BaseModel):
    """Persisted simulation payload."""
    simulation_id: int
    status: ValidationStatus
    initial_installment: float
    official_installment: float
    delta: float
    parameters: SimulationParameters
    result: LocalSimulationResult
    quote: Optional[AuthoritativeQuote] = None
    created_at: datetime
    created_at_display: str = Field(..., description="Creation time in Brasília time")
