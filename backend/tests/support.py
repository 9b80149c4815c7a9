"""Seed identifiers and canned carrier responses shared by the test modules."""
from __future__ import annotations

from pathlib import Path
from typing import Callable

import httpx

FIXTURES = Path(__file__).parent / "fixtures"

CARRIER_URL = "https://carrier.test/services/canalvenda"
CARRIER_PASSWORD = "s3cr3t-pass"

CLIENT_ID = 42
CLIENT_NO_BIRTH_DATE_ID = 43
CLIENT_SUPPLIER_ID = 44
PRODUCT_ID = 7
PRODUCT_OTHER_CARRIER_ID = 8


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def soap_response(operation: str, inner: str) -> str:
    """Wrap an inner result document the way the carrier does."""
    return (
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/"><soap:Body>'
        f'<ns2:{operation}Response xmlns:ns2="urn:br.com.sulamerica.canalvenda.ws">'
        f"<ns2:{operation}><![CDATA[{inner}]]></ns2:{operation}>"
        f"</ns2:{operation}Response></soap:Body></soap:Envelope>"
    )


def issue_response(code: str = "0", message: str = "ok", operation_number: str | None = "740442") -> str:
    parts = [f"<retorno>{code}</retorno>", f"<retornoMsg>{message}</retornoMsg>"]
    if code == "0":
        if operation_number:
            parts.append(f"<numeroOperacao>{operation_number}</numeroOperacao>")
        parts.append("<numCertificado>000123456</numCertificado>")
        parts.append("<apolice><numApolice>1020304050</numApolice></apolice>")
    return soap_response("contratarSeguro", "<retornoContratacao>" + "".join(parts) + "</retornoContratacao>")


def cancel_response(code: str = "0", message: str = "Cancelamento confirmado") -> str:
    inner = f"<retornoCancelamento><retorno>{code}</retorno><retornoMsg>{message}</retornoMsg></retornoCancelamento>"
    return soap_response("confirmarCancelamento", inner)


class FakeCarrier:
    """httpx transport handler standing in for the carrier web service."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.issue_body = issue_response()
        self.cancel_body = cancel_response()
        self.status_code = 200
        self.error: Callable[[httpx.Request], Exception] | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error(request)
        body = request.content.decode("utf-8")
        if "confirmarCancelamento" in body:
            text = self.cancel_body
        else:
            text = self.issue_body
        return httpx.Response(self.status_code, text=text, headers={"Content-Type": "text/xml"})

    @property
    def bodies(self) -> list[str]:
        return [r.content.decode("utf-8") for r in self.requests]
