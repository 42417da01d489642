"""
Browser-like session client for the CAIXA SIOPI internet simulator.

One `CaixaSession` is one stateful conversation with the remote (init page,
eligibility form, DWR call) over its own cookie jar. `CaixaClient` is the
entry point used by the API: every top-level call runs on a fresh session.
"""
import re
import threading
import unicodedata
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from http.cookiejar import DefaultCookiePolicy
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urljoin, urlsplit

import requests

from caixasim.caixa.cache import CityCache
from caixasim.caixa.cookies import CookieJar
from caixasim.caixa.dwr import DwrCall, DwrCodec, Row, city_call, simulation_call
from caixasim.caixa.schemas import AuthoritativeQuote, CityOption, ProductOption
from caixasim.core.config import Settings, settings as default_settings
from caixasim.core.errors import (
    DecodeError,
    InvalidParameter,
    InvalidQuote,
    NoEligibleProduct,
    NoQuoteReturned,
    RemoteBlocked,
    RemoteNetworkError,
    RemoteTimeout,
    RequestCancelled,
)
from caixasim.core.logger import logger
from caixasim.core.utils import format_br_date, format_integer, format_money, normalize_uf, parse_br_number
from caixasim.simulacao.schemas import AmortizationSystem, SimulationParameters

SAC_SYSTEM_CODE = 30
CANCEL_POLL_SECONDS = 0.05
REMOTE_CODE_FIELDS = ("city_code", "property_type", "financing_group")
VALID_UFS = frozenset({
    "AC", "AL", "AM", "AP", "BA", "CE", "DF", "ES", "GO", "MA", "MG", "MS", "MT", "PA",
    "PB", "PE", "PI", "PR", "RJ", "RN", "RO", "RR", "RS", "SC", "SE", "SP", "TO",
})

_PRODUCT_PATTERN = re.compile(r"simuladorInternet\.simular\(\s*(\d+)\s*,\s*(\d+)\s*,\s*'([^']*)'", re.MULTILINE)
_REMOTE_CODE_PATTERN = re.compile(r"[0-9]{1,10}")


@dataclass
class RemoteResponse:
    status: int
    text: str


def build_simulation_parameters(params: SimulationParameters, product: ProductOption) -> str:
    """Builds the colon-delimited parameter string in the exact field order the remote expects."""
    amortization_override = str(SAC_SYSTEM_CODE) if params.amortization_system == AmortizationSystem.SAC else ""
    fields = [
        ("valorImovel", format_money(params.property_value)),
        ("rendaFamiliarBruta", format_money(params.monthly_income)),
        ("tipoImovel", params.property_type),
        ("imovelCidade", ""),
        ("vaContaFgts", ""),
        ("icLoteAlienado", ""),
        ("grupoTipoFinanciamento", params.financing_group),
        ("dataNascimento", format_br_date(params.birth_date)),
        ("uf", params.uf),
        ("cidade", params.city_code),
        ("nuItemProduto", product.item_id),
        ("nuVersao", product.version_id),
        ("valorReforma", ""),
        ("codigoSeguradoraSelecionada", ""),
        ("nomeSeguradora", ""),
        ("dataBeneficioFGTS", ""),
        ("beneficiadoFGTS", ""),
        ("codContextoCredito", "1"),
        ("complementouDadosSubsidio", "true"),
        ("pessoa", params.person_type.value),
        ("convenio", ""),
        ("nuEmpresa", ""),
        ("nuSeqPropostaInternet", ""),
        ("permiteDetalhamento", "S"),
        ("codSistemaAmortizacaoAlterado", amortization_override),
        ("nuCpfCnpjInteressado", ""),
        ("icFatorSocial", ""),
        ("icPossuiRelacionamentoCAIXA", ""),
        ("icServidorPublico", ""),
        ("icContaSalarioCAIXA", ""),
        ("icPortabilidadeCreditoImobiliario", ""),
        ("vaNuApf", ""),
        ("nuTelefoneCelular", ""),
        ("icArmazenamentoDadoCliente", "V"),
        ("vaIcTaxaCustomizada", ""),
        ("prazo", format_integer(params.term_months)),
        ("recursosProprios", format_money(params.down_payment)),
    ]
    return ":".join(f"{name}={value}" for name, value in fields)


def extract_product(html: str) -> Optional[ProductOption]:
    match = _PRODUCT_PATTERN.search(html)
    if not match:
        return None
    return ProductOption(item_id=match.group(1), version_id=match.group(2), name=match.group(3))


def quote_from_row(row: Row, requested_term: int) -> AuthoritativeQuote:
    """Maps the first simulation row into an AuthoritativeQuote."""
    installment = parse_br_number(row.get("prestacao"))
    if not installment or installment <= 0:
        raise InvalidQuote("Remote simulator did not return a valid installment")

    last_installment = parse_br_number(row.get("ultimaPrestacao"))
    term = parse_br_number(row.get("prazo")) or requested_term
    admin_fee = parse_br_number(row.get("valorTaxaAdministracao"))
    if admin_fee is None:
        admin_fee = parse_br_number(row.get("taxaAdministracao"))
    system_code = parse_br_number(row.get("codigoSistemaAmortizacao"))
    system_name = row.get("valorSistemaAmortizacao")
    insurer = row.get("nomeSeguradora")

    return AuthoritativeQuote(
        installment=installment,
        last_installment=last_installment if last_installment and last_installment > 0 else None,
        term_months=max(1, round(term)),
        financed_amount=max(0.0, parse_br_number(row.get("valorFinanciamento")) or 0.0),
        nominal_annual_rate=parse_br_number(row.get("percentualTaxaJuros")),
        monthly_insurance=max(0.0, (parse_br_number(row.get("seguroMip")) or 0.0)
                              + (parse_br_number(row.get("seguroDfi")) or 0.0)),
        monthly_admin_fee=max(0.0, admin_fee or 0.0),
        amortization_code=round(system_code) if system_code else None,
        amortization_name=system_name if isinstance(system_name, str) else None,
        insurer=insurer if isinstance(insurer, str) else None,
    )


def _sort_key(city: CityOption) -> tuple:
    folded = unicodedata.normalize("NFKD", city.name)
    return ("".join(c for c in folded if not unicodedata.combining(c)).casefold(), city.name)


def cities_from_rows(rows: List[Row]) -> List[CityOption]:
    """Trims, drops incomplete rows, deduplicates by code and sorts by name."""
    seen: Dict[str, CityOption] = {}
    for row in rows:
        code = str(row.get("codigo") if row.get("codigo") is not None else "").strip()
        name = str(row.get("nome") if row.get("nome") is not None else "").strip()
        if code and name and code not in seen:
            seen[code] = CityOption(code=code, name=name)
    return sorted(seen.values(), key=_sort_key)


def validate_uf(raw: str) -> str:
    uf = normalize_uf(raw)
    if uf not in VALID_UFS:
        raise InvalidParameter(f"Invalid UF: {raw!r}")
    return uf


def validate_remote_codes(params: SimulationParameters) -> None:
    """Codes are spliced into delimited payloads, so only plain digits are accepted."""
    for field_name in REMOTE_CODE_FIELDS:
        if not _REMOTE_CODE_PATTERN.fullmatch(getattr(params, field_name)):
            raise InvalidParameter(f"{field_name} must be a numeric code")


class CaixaSession:
    """
    A single logical session against the remote. Not thread-safe: one session,
    one caller, one jar.
    """

    def __init__(
        self,
        config: Settings = default_settings,
        codec: Optional[DwrCodec] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        self.config = config
        self.codec = codec or DwrCodec()
        self.cancel_event = cancel_event
        self.jar = CookieJar()
        self.http = requests.Session()
        # Cookies are replayed from self.jar only
        self.http.cookies.set_policy(DefaultCookiePolicy(allowed_domains=()))

        app_path = config.CAIXA_APP_PATH
        self.base_url = config.CAIXA_BASE_URL.rstrip("/")
        self.init_path = f"{app_path}/simulaOperacaoInternet.do?method=inicializarCasoUso"
        self.eligibility_path = f"{app_path}/simulaOperacaoInternet.do?method=enquadrarProdutos"
        self.dwr_div_path = f"{app_path}/dwr/call/plaincall/SIOPIAjaxFrontController.callActionForwardMethodDiv.dwr"
        self.dwr_list_path = f"{app_path}/dwr/call/plaincall/SIOPIAjaxFrontController.callActionForwardMethodLista.dwr"

    def _origin(self, url: str) -> tuple:
        parts = urlsplit(url)
        return parts.scheme, parts.netloc

    def _ensure_not_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RequestCancelled("Remote session was cancelled")

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """
        Runs one HTTP call. With a cancel event the call runs on a worker thread
        and is abandoned as soon as the event is set.
        """
        if self.cancel_event is None:
            return self.http.request(method, url, **kwargs)

        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self.http.request, method, url, **kwargs)
        try:
            while True:
                done, _ = wait([future], timeout=CANCEL_POLL_SECONDS)
                if done:
                    return future.result()
                if self.cancel_event.is_set():
                    # Drops pooled connections so the abandoned call fails fast
                    self.http.close()
                    raise RequestCancelled("Remote session was cancelled during an HTTP call")
        finally:
            executor.shutdown(wait=False)

    def close(self) -> None:
        self.http.close()

    def request(
        self,
        path: str,
        method: str = "GET",
        body: Optional[Any] = None,
        content_type: Optional[str] = None,
        referer: Optional[str] = None
    ) -> RemoteResponse:
        """
        Performs one exchange, following same-origin redirects manually as GET
        and replaying the jar on every hop.
        """
        url = f"{self.base_url}{path}"

        for _ in range(self.config.CAIXA_MAX_REDIRECTS + 1):
            self._ensure_not_cancelled()

            headers = {
                "User-Agent": self.config.CAIXA_USER_AGENT,
                "Accept": "*/*",
                "Origin": self.base_url,
            }
            cookie = self.jar.as_header()
            if cookie:
                headers["Cookie"] = cookie
            if content_type:
                headers["Content-Type"] = content_type
            if referer:
                headers["Referer"] = referer

            try:
                response = self._send(
                    method,
                    url,
                    headers=headers,
                    data=body,
                    timeout=self.config.CAIXA_TIMEOUT_SECONDS,
                    allow_redirects=False,
                )
            except requests.Timeout as e:
                raise RemoteTimeout(f"Remote simulator timed out: {method} {path}") from e
            except requests.RequestException as e:
                raise RemoteNetworkError(f"Could not reach remote simulator: {type(e).__name__}") from e

            raw_headers = getattr(getattr(response, "raw", None), "headers", None)
            self.jar.ingest(raw_headers if raw_headers is not None else response.headers)

            location = response.headers.get("location")
            if 300 <= response.status_code < 400 and location:
                target = urljoin(url, location)
                if self._origin(target) == self._origin(self.base_url):
                    logger.debug(f"Following redirect {response.status_code} -> {urlsplit(target).path}")
                    url, method, body, content_type = target, "GET", None, None
                    continue
                logger.warning(f"Ignoring cross-origin redirect to {urlsplit(target).netloc}")

            return RemoteResponse(status=response.status_code, text=response.text)

        raise RemoteNetworkError("Too many redirects from remote simulator")

    def _check_blocked(self, response: RemoteResponse, message: str) -> None:
        if response.status >= 400 or any(marker in response.text for marker in self.config.CAIXA_BLOCK_MARKERS):
            logger.warning(f"Remote simulator refused the session: status={response.status}")
            raise RemoteBlocked(message)

    def _call(self, path: str, call: DwrCall, referer: str, blocked_message: str) -> List[Row]:
        response = self.request(
            path,
            method="POST",
            body=self.codec.encode(call),
            content_type="text/plain",
            referer=referer,
        )
        self._check_blocked(response, blocked_message)
        try:
            return self.codec.decode(response.text)
        except DecodeError as e:
            logger.error(f"DWR decode failure ({e.reason}) for {call.method_name}: {e.fragment!r}")
            raise

    def initialize(self) -> None:
        response = self.request(self.init_path, referer=f"{self.base_url}{self.init_path}")
        self._check_blocked(response, "Remote simulator blocked the automated session")

    def submit_eligibility(self, params: SimulationParameters) -> ProductOption:
        form = urlencode({
            "versao": self.config.CAIXA_FORM_VERSION,
            "permitePlanilha": "S",
            "codContextoCredito": "1",
            "permiteDetalhamento": "S",
            "pessoa": params.person_type.value,
            "tipoImovel": params.property_type,
            "grupoTipoFinanciamento": params.financing_group,
            "valorImovel": format_money(params.property_value),
            "uf": params.uf,
            "cidade": params.city_code,
            "rendaFamiliarBruta": format_money(params.monthly_income),
            "dataNascimento": format_br_date(params.birth_date),
            "icArmazenamentoDadoCliente": "V",
        })
        response = self.request(
            self.eligibility_path,
            method="POST",
            body=form,
            content_type="application/x-www-form-urlencoded",
            referer=f"{self.base_url}{self.init_path}",
        )
        self._check_blocked(response, "Remote simulator blocked the product lookup")

        product = extract_product(response.text)
        if product is None:
            raise NoEligibleProduct("Remote simulator offered no product for the given data")
        logger.info(f"Eligible product: {product.name} ({product.item_id}/{product.version_id})")
        return product

    def run_simulation(self, params: SimulationParameters, product: ProductOption) -> AuthoritativeQuote:
        rows = self._call(
            self.dwr_div_path,
            simulation_call(build_simulation_parameters(params, product)),
            referer=f"{self.base_url}{self.eligibility_path}",
            blocked_message="Remote simulator blocked the automated simulation",
        )
        if not rows:
            if params.amortization_system == AmortizationSystem.SAC:
                raise NoQuoteReturned(
                    "Remote simulator did not return a SAC quote for this case. Use manual entry."
                )
            raise NoQuoteReturned("Remote simulator did not return an installment for these parameters")
        return quote_from_row(rows[0], params.term_months)

    def list_cities(self, uf: str) -> List[CityOption]:
        rows = self._call(
            self.dwr_list_path,
            city_call(uf),
            referer=f"{self.base_url}{self.init_path}",
            blocked_message="Remote simulator blocked the city lookup",
        )
        return cities_from_rows(rows)


class CaixaClient:
    """Entry point for the remote authority. Holds no per-call state besides the shared city cache."""

    def __init__(
        self,
        city_cache: CityCache,
        config: Settings = default_settings,
        codec: Optional[DwrCodec] = None
    ):
        self.city_cache = city_cache
        self.config = config
        self.codec = codec or DwrCodec()

    def new_session(self, cancel_event: Optional[threading.Event] = None) -> CaixaSession:
        return CaixaSession(self.config, self.codec, cancel_event)

    def fetch_quote(
        self,
        params: SimulationParameters,
        cancel_event: Optional[threading.Event] = None
    ) -> AuthoritativeQuote:
        """Runs init -> eligibility -> simulation on a fresh session."""
        validate_remote_codes(params)
        session = self.new_session(cancel_event)
        try:
            session.initialize()
            product = session.submit_eligibility(params)
            quote = session.run_simulation(params, product)
        finally:
            session.close()
        logger.info(
            f"Authoritative quote received: installment={quote.installment}, "
            f"term={quote.term_months}, system={quote.amortization_code}"
        )
        return quote

    def lookup_cities(self, uf: str, cancel_event: Optional[threading.Event] = None) -> List[CityOption]:
        key = validate_uf(uf)
        cached = self.city_cache.get(key)
        if cached is not None:
            return cached

        session = self.new_session(cancel_event)
        try:
            session.initialize()
            cities = session.list_cities(key)
        finally:
            session.close()
        self.city_cache.put(key, cities)
        logger.info(f"Cached {len(cities)} cities for {key}")
        return cities
