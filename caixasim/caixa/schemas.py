"""
Pydantic schemas for data obtained from the remote lending authority.
Instances are frozen: what the authority said is never edited afterwards.
"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class AuthoritativeQuote(BaseModel):
    """Installment quote as reported by the remote simulator."""
    installment: float = Field(..., gt=0, description="First installment (R$)")
    last_installment: Optional[float] = Field(None, gt=0, description="Last installment (R$), when reported")
    term_months: int = Field(..., ge=1, description="Effective term in months")
    financed_amount: float = Field(..., ge=0, description="Financed amount (R$)")
    nominal_annual_rate: Optional[float] = Field(None, description="Nominal annual interest rate (%)")
    monthly_insurance: float = Field(0.0, ge=0, description="Monthly MIP + DFI insurance (R$)")
    monthly_admin_fee: float = Field(0.0, ge=0, description="Monthly administrative fee (R$)")
    amortization_code: Optional[int] = Field(None, description="Amortization system code reported by the remote")
    amortization_name: Optional[str] = Field(None, description="Amortization system name reported by the remote")
    insurer: Optional[str] = Field(None, description="Insurer name")

    model_config = ConfigDict(frozen=True)


class ProductOption(BaseModel):
    """Eligible financing product offered by the framing page."""
    item_id: str
    version_id: str
    name: str

    model_config = ConfigDict(frozen=True)


class CityOption(BaseModel):
    code: str = Field(..., min_length=1, description="Remote city code")
    name: str = Field(..., min_length=1, description="City display name")

    model_config = ConfigDict(frozen=True)


class CityListResponse(BaseModel):
    ok: bool = True
    uf: str
    data: List[CityOption]
