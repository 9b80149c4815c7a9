from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import Settings, get_settings
from app.core.exceptions import SupplierPreconditionError
from app.services.supplier import codec
from app.services.supplier.codec import (
    CancelPolicyRequest,
    Credentials,
    IssuePolicyRequest,
    NormalizedResult,
)

logger = logging.getLogger(__name__)

REQUEST_HEADERS = {
    "Content-Type": "application/xml",
    "Accept": "application/xml",
    "SOAPAction": "",
}


@dataclass(frozen=True)
class SupplierConfig:
    """Transport settings and default codes for the carrier."""

    url: str
    username: str
    password: str
    product_code: str
    sales_channel: str
    carrier_name: str
    invoice_period: str | None = None
    timeout_seconds: float = 30.0
    connect_retries: int = 0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SupplierConfig":
        settings = settings or get_settings()
        return cls(
            url=settings.SUPPLIER_URL,
            username=settings.SUPPLIER_USERNAME,
            password=settings.SUPPLIER_PASSWORD,
            product_code=settings.SUPPLIER_PRODUCT_CODE,
            sales_channel=settings.SUPPLIER_SALES_CHANNEL,
            carrier_name=settings.SUPPLIER_NAME,
            invoice_period=settings.SUPPLIER_INVOICE_PERIOD,
            timeout_seconds=settings.SUPPLIER_TIMEOUT_SECONDS,
            connect_retries=settings.SUPPLIER_CONNECT_RETRIES,
        )

    @property
    def credentials(self) -> Credentials:
        return Credentials(username=self.username, password=self.password)

    def current_invoice_period(self, today: date | None = None) -> str:
        """Billing month in the carrier's ``MMYYYY`` format."""
        if self.invoice_period:
            return self.invoice_period
        today = today or date.today()
        return today.strftime("%m%Y")


class SupplierGateway:
    """Single entry point to the carrier's issue and cancel operations.

    Every call returns a ``NormalizedResult``; transport and codec errors are
    converted, never raised.
    """

    def __init__(self, config: SupplierConfig, client: httpx.Client | None = None) -> None:
        self.config = config
        self._client = client or httpx.Client(timeout=config.timeout_seconds)

    def close(self) -> None:
        self._client.close()

    def handles(self, supplier_name: str | None) -> bool:
        """Whether a product's carrier is the one this gateway integrates with."""
        if not supplier_name or not self.config.carrier_name:
            return False
        return self.config.carrier_name.lower() in supplier_name.lower()

    def issue_policy(self, request: IssuePolicyRequest) -> NormalizedResult:
        return self._call(
            "issue",
            lambda creds: codec.encode_issue_request(request, creds),
            codec.decode_issue_response,
        )

    def cancel_policy(self, request: CancelPolicyRequest) -> NormalizedResult:
        return self._call(
            "cancel",
            lambda creds: codec.encode_cancel_request(request, creds),
            codec.decode_cancel_response,
        )

    def _call(
        self,
        operation: str,
        encode: Callable[[Credentials], str],
        decode: Callable[[str], NormalizedResult],
    ) -> NormalizedResult:
        try:
            envelope = encode(self.config.credentials)
            audit_envelope = encode(self.config.credentials.masked())
        except SupplierPreconditionError as exc:
            logger.info("Carrier %s not attempted: %s", operation, exc)
            return NormalizedResult.failure(codec.FAILURE_PRECONDITION, str(exc))

        try:
            response = self._post(envelope)
        except httpx.HTTPError as exc:
            logger.error("Carrier %s request failed: %s", operation, exc)
            result = NormalizedResult.failure(
                codec.FAILURE_TRANSPORT, str(exc) or exc.__class__.__name__
            )
            result.request_payload = audit_envelope
            return result

        result = decode(response.text)
        if not result.success and result.failure_kind == codec.FAILURE_PROTOCOL and response.is_error:
            result.return_message = f"HTTP {response.status_code}: {result.return_message}"
        result.request_payload = audit_envelope
        logger.info(
            "Carrier %s finished: success=%s code=%s message=%s",
            operation,
            result.success,
            result.return_code,
            result.return_message,
        )
        return result

    def _post(self, envelope: str) -> httpx.Response:
        attempts = max(1, self.config.connect_retries + 1)

        # Only failures to open the connection are retried.
        @retry(
            retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            reraise=True,
        )
        def send() -> httpx.Response:
            return self._client.post(
                self.config.url,
                content=envelope.encode("utf-8"),
                headers=REQUEST_HEADERS,
                timeout=self.config.timeout_seconds,
            )

        return send()
