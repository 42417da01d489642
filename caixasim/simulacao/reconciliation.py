"""
Cross-validation of the local simulation against the authoritative installment.
"""
import threading
from typing import List, Optional, Tuple

from caixasim.caixa.client import SAC_SYSTEM_CODE, CaixaClient
from caixasim.caixa.schemas import AuthoritativeQuote
from caixasim.core.config import settings
from caixasim.core.errors import InvalidParameter, RemoteError
from caixasim.core.logger import logger
from caixasim.simulacao.schemas import (
    AmortizationSystem,
    LocalSimulationResult,
    ReconciledSimulation,
    RemoteErrorInfo,
    SimulationParameters,
    ValidationStatus,
)
from caixasim.simulacao.service import apply_quote, simulate


def classify(
    result: LocalSimulationResult,
    official_installment: Optional[float],
    tolerance: float = settings.RECONCILIATION_TOLERANCE
) -> Tuple[ValidationStatus, Optional[float]]:
    """
    Returns the validation status and the signed delta (local - official) in cents.
    No official value means unverified.
    """
    if official_installment is None or official_installment <= 0:
        return ValidationStatus.UNVERIFIED, None

    delta = round(result.initial_installment - official_installment, 2)
    if abs(delta) <= tolerance:
        return ValidationStatus.CONFIRMED, delta
    return ValidationStatus.DIVERGENT, delta


def amortization_mismatch(params: SimulationParameters, quote: AuthoritativeQuote) -> Optional[str]:
    """
    The remote does not reliably honor the amortization override, so the
    reported system code is checked against the requested one.
    """
    if quote.amortization_code is None:
        if params.amortization_system == AmortizationSystem.SAC:
            return "Remote quote did not report its amortization system; SAC could not be confirmed"
        return None

    reported_sac = quote.amortization_code == SAC_SYSTEM_CODE
    requested_sac = params.amortization_system == AmortizationSystem.SAC
    if reported_sac == requested_sac:
        return None
    reported = quote.amortization_name or str(quote.amortization_code)
    return (
        f"Requested {params.amortization_system.value.upper()} but the remote quote used {reported}; "
        "check the official simulator manually"
    )


def reconcile(
    params: SimulationParameters,
    result: LocalSimulationResult,
    quote: Optional[AuthoritativeQuote] = None,
    official_installment: Optional[float] = None,
    tolerance: float = settings.RECONCILIATION_TOLERANCE
) -> ReconciledSimulation:
    """Merges the local result with the quote (or a manually entered official installment)."""
    reference = quote.installment if quote is not None else official_installment
    status, delta = classify(result, reference, tolerance)

    warnings: List[str] = []
    if quote is not None:
        mismatch = amortization_mismatch(params, quote)
        if mismatch:
            warnings.append(mismatch)
            status = ValidationStatus.DIVERGENT

    if status == ValidationStatus.DIVERGENT:
        warnings.append("Local simulation diverges from the official value. Review the parameters.")

    return ReconciledSimulation(
        parameters=params,
        result=result,
        quote=quote,
        official_installment=reference if reference and reference > 0 else None,
        status=status,
        delta=delta,
        warnings=warnings,
    )


def run_reconciled_simulation(
    params: SimulationParameters,
    client: Optional[CaixaClient] = None,
    official_installment: Optional[float] = None,
    tolerance: float = settings.RECONCILIATION_TOLERANCE,
    cancel_event: Optional[threading.Event] = None
) -> ReconciledSimulation:
    """
    Always returns the local simulation. The authoritative quote is a best-effort
    enhancement: remote failures are recorded on the result, never raised.
    InvalidParameter from the local engine does propagate.
    """
    result = simulate(params)
    if client is None:
        return reconcile(params, result, official_installment=official_installment, tolerance=tolerance)

    try:
        quote = client.fetch_quote(params, cancel_event=cancel_event)
    except RemoteError as e:
        logger.warning(f"Authoritative quote unavailable ({e.kind}): {e.message}")
        reconciled = reconcile(params, result, official_installment=official_installment, tolerance=tolerance)
        return reconciled.model_copy(update={
            "remote_error": RemoteErrorInfo(kind=e.kind, detail=e.message),
        })

    effective = apply_quote(params, quote)
    try:
        effective_result = simulate(effective)
    except InvalidParameter as e:
        # The authority's terms fell outside local limits; keep the caller's own parameters
        logger.warning(f"Quote terms rejected by local engine: {e.message}")
        effective, effective_result = params, result
    return reconcile(effective, effective_result, quote=quote, tolerance=tolerance)
