"""
SOAP codec for the carrier's sales-channel web service.

The carrier validates two documents independently:

1. the outer SOAP envelope (WS-Security header + operation element), and
2. an inner ``<parametros>`` document that travels as text inside the
   ``urn:parametros`` element, wrapped in a CDATA section.

Responses mirror this: the operation's result node holds another XML
document as text (CDATA or entity-escaped). Decoding never raises; any shape
problem becomes a ``NormalizedResult`` with ``success=False`` and a
diagnostic message.
"""
from __future__ import annotations

import html
import logging
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Iterable

from app.core.exceptions import SupplierPreconditionError

logger = logging.getLogger(__name__)

SOAPENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
CARRIER_NS = "urn:br.com.sulamerica.canalvenda.ws"
WSSE_NS = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd"

NAMESPACES = {"soap": SOAPENV_NS, "ns2": CARRIER_NS}

ET.register_namespace("soapenv", SOAPENV_NS)
ET.register_namespace("urn", CARRIER_NS)
ET.register_namespace("NS1", WSSE_NS)

ISSUE_OPERATION = "contratarSeguro"
CANCEL_OPERATION = "confirmarCancelamento"

# Placeholder swapped for the CDATA section after serialization.
_PARAMETERS_MARKER = "@@PARAMETROS@@"

PARTNER_OPERATION_MAX_LENGTH = 14

FAILURE_PRECONDITION = "precondition"
FAILURE_TRANSPORT = "transport"
FAILURE_PROTOCOL = "protocol"
FAILURE_REJECTED = "rejected"


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str

    def masked(self) -> "Credentials":
        return Credentials(username=self.username, password="****")


@dataclass
class IssuePolicyRequest:
    product_code: str
    sales_channel: str
    partner_operation_id: str
    plan_code: str
    premium: str
    insured_name: str
    birth_date: date | str | None
    sex: str | None
    state_code: str | None
    document_number: str | None
    coverage_start: date | str | None
    coverage_end: date | str | None
    document_type: str = "C"


@dataclass
class CancelPolicyRequest:
    operation_number: str | None
    sales_channel: str
    invoice_period: str


@dataclass
class NormalizedResult:
    """Uniform outcome of one carrier operation."""

    success: bool
    return_code: str | None = None
    return_message: str = ""
    policy_number: str | None = None
    certificate_number: str | None = None
    operation_number: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    raw: str | None = None
    failure_kind: str | None = None
    request_payload: str | None = None

    @classmethod
    def failure(cls, kind: str, message: str, raw: str | None = None) -> "NormalizedResult":
        return cls(success=False, return_message=message, raw=raw, failure_kind=kind)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        # Envelopes go to the audit raw payload, not to metadata.
        payload.pop("request_payload", None)
        payload.pop("raw", None)
        return payload


def normalize_document(value: str | None) -> str:
    if not value:
        return ""
    return "".join(ch for ch in value if ch not in ".-/ ")


def normalize_sex(value: str | None) -> str:
    sex = (value or "").strip().upper()
    return sex if sex in ("M", "F") else "M"


def _format_date(value: date | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def _cdata(text: str) -> str:
    # "]]>" cannot appear inside a CDATA section; split it across two.
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def _sub(parent: ET.Element, tag: str, text: str | None = None) -> ET.Element:
    child = ET.SubElement(parent, tag)
    if text is not None:
        child.text = text
    return child


def _envelope(credentials: Credentials) -> tuple[ET.Element, ET.Element]:
    envelope = ET.Element(f"{{{SOAPENV_NS}}}Envelope")
    header = _sub(envelope, f"{{{SOAPENV_NS}}}Header")
    security = _sub(header, f"{{{WSSE_NS}}}Security")
    security.set(f"{{{SOAPENV_NS}}}mustUnderstand", "1")
    token = _sub(security, f"{{{WSSE_NS}}}UsernameToken")
    _sub(token, f"{{{WSSE_NS}}}Username", credentials.username)
    _sub(token, f"{{{WSSE_NS}}}Password", credentials.password)
    body = _sub(envelope, f"{{{SOAPENV_NS}}}Body")
    return envelope, body


def _require(values: dict[str, str]) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise SupplierPreconditionError(missing)


def encode_issue_request(request: IssuePolicyRequest, credentials: Credentials) -> str:
    """Build the ``contratarSeguro`` envelope.

    Raises ``SupplierPreconditionError`` when a required field is empty.
    """
    fields = {
        "product_code": str(request.product_code or ""),
        "sales_channel": str(request.sales_channel or ""),
        "partner_operation_id": str(request.partner_operation_id or "")[:PARTNER_OPERATION_MAX_LENGTH],
        "plan_code": str(request.plan_code or ""),
        "premium": str(request.premium or ""),
        "insured_name": (request.insured_name or "").strip(),
        "birth_date": _format_date(request.birth_date),
        "sex": normalize_sex(request.sex),
        "state_code": (request.state_code or "").strip().upper(),
        "document_type": request.document_type or "",
        "document_number": normalize_document(request.document_number),
        "coverage_start": _format_date(request.coverage_start),
        "coverage_end": _format_date(request.coverage_end),
    }
    _require(fields)

    parameters = ET.Element("parametros")
    _sub(parameters, "planoProduto", fields["plan_code"])
    _sub(parameters, "premioSeguro", fields["premium"])
    _sub(parameters, "nomeSegurado", fields["insured_name"])
    _sub(parameters, "dataNascimento", fields["birth_date"])
    _sub(parameters, "sexo", fields["sex"])
    _sub(parameters, "uf", fields["state_code"])
    _sub(parameters, "tipoDocumento", fields["document_type"])
    _sub(parameters, "documento", fields["document_number"])
    _sub(parameters, "inicioVigencia", fields["coverage_start"])
    _sub(parameters, "fimVigencia", fields["coverage_end"])
    inner = ET.tostring(parameters, encoding="unicode")

    envelope, body = _envelope(credentials)
    operation = _sub(body, f"{{{CARRIER_NS}}}{ISSUE_OPERATION}")
    _sub(operation, f"{{{CARRIER_NS}}}produto", fields["product_code"])
    _sub(operation, f"{{{CARRIER_NS}}}canalVenda", fields["sales_channel"])
    _sub(operation, f"{{{CARRIER_NS}}}operacaoParceiro", fields["partner_operation_id"])
    _sub(operation, f"{{{CARRIER_NS}}}parametros", _PARAMETERS_MARKER)

    outer = ET.tostring(envelope, encoding="unicode")
    return outer.replace(_PARAMETERS_MARKER, _cdata(inner), 1)


def encode_cancel_request(request: CancelPolicyRequest, credentials: Credentials) -> str:
    """Build the ``confirmarCancelamento`` envelope."""
    fields = {
        "operation_number": str(request.operation_number or "").strip(),
        "sales_channel": str(request.sales_channel or ""),
        "invoice_period": str(request.invoice_period or ""),
    }
    _require(fields)

    envelope, body = _envelope(credentials)
    operation = _sub(body, f"{{{CARRIER_NS}}}{CANCEL_OPERATION}")
    _sub(operation, f"{{{CARRIER_NS}}}numeroOperacao", fields["operation_number"])
    _sub(operation, f"{{{CARRIER_NS}}}canalVenda", fields["sales_channel"])
    _sub(operation, f"{{{CARRIER_NS}}}mesAnoFatura", fields["invoice_period"])
    return ET.tostring(envelope, encoding="unicode")


def _local_name(tag: Any) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _find_by_local_path(root: ET.Element, path: Iterable[str]) -> ET.Element | None:
    """Namespace-agnostic lookup, equivalent to ``//*[local-name()=a]/*[local-name()=b]...``."""
    head, *rest = list(path)
    for candidate in root.iter():
        if _local_name(candidate.tag) != head:
            continue
        node: ET.Element | None = candidate
        for name in rest:
            node = next((c for c in node if _local_name(c.tag) == name), None)
            if node is None:
                break
        if node is not None:
            return node
    return None


def _element_to_dict(element: ET.Element) -> Any:
    children = list(element)
    if not children:
        return (element.text or "").strip()
    result: dict[str, Any] = {}
    for child in children:
        key = _local_name(child.tag)
        value = _element_to_dict(child)
        if key in result:
            existing = result[key]
            if not isinstance(existing, list):
                result[key] = existing = [existing]
            existing.append(value)
        else:
            result[key] = value
    return result


def _text(root: ET.Element, path: str) -> str | None:
    node = root.find(path)
    if node is None or node.text is None:
        return None
    value = node.text.strip()
    return value or None


def _inner_document(node: ET.Element) -> ET.Element | str:
    """Return the parsed inner document, or a diagnostic string."""
    text = (node.text or "").strip()
    if not text:
        children = list(node)
        if children:
            # Some sandboxes inline the document instead of escaping it.
            return children[0]
        return "inner document is empty"
    if not text.startswith("<"):
        text = html.unescape(text).strip()
    if not text.startswith("<"):
        return "inner document is not XML"
    try:
        return ET.fromstring(text)
    except ET.ParseError as exc:
        return f"malformed inner document: {exc}"


def _decode(xml: str | bytes | None, response_operation: str, result_node: str, success_message: str) -> NormalizedResult:
    raw = xml.decode("utf-8", errors="replace") if isinstance(xml, bytes) else xml
    if not raw or not raw.strip():
        return NormalizedResult.failure(FAILURE_PROTOCOL, "empty response", raw=raw)

    try:
        root = ET.fromstring(raw.strip())
    except ET.ParseError as exc:
        logger.warning("Carrier response is not valid XML: %s", exc)
        return NormalizedResult.failure(FAILURE_PROTOCOL, f"malformed response: {exc}", raw=raw)

    node = root.find(f".//soap:Body/ns2:{response_operation}/ns2:{result_node}", NAMESPACES)
    if node is None:
        node = _find_by_local_path(root, ("Body", response_operation, result_node))
    if node is None:
        fault = _find_by_local_path(root, ("Fault", "faultstring"))
        if fault is not None and fault.text:
            return NormalizedResult.failure(FAILURE_PROTOCOL, f"SOAP fault: {fault.text.strip()}", raw=raw)
        return NormalizedResult.failure(FAILURE_PROTOCOL, "response node not found", raw=raw)

    inner = _inner_document(node)
    if isinstance(inner, str):
        return NormalizedResult.failure(FAILURE_PROTOCOL, inner, raw=raw)

    data = _element_to_dict(inner)
    if not isinstance(data, dict):
        data = {"value": data}

    return_code = _text(inner, "retorno")
    message = _text(inner, "retornoMsg")
    success = return_code == "0"
    if not message:
        message = success_message if success else f"carrier returned code {return_code}"

    return NormalizedResult(
        success=success,
        return_code=return_code,
        return_message=message,
        policy_number=_text(inner, "apolice/numApolice") or _text(inner, ".//numApolice"),
        certificate_number=_text(inner, ".//numCertificado"),
        operation_number=_text(inner, ".//numeroOperacao"),
        data=data,
        raw=raw,
        failure_kind=None if success else FAILURE_REJECTED,
    )


def decode_issue_response(xml: str | bytes | None) -> NormalizedResult:
    return _decode(xml, "contratarSeguroResponse", ISSUE_OPERATION, "policy issued")


def decode_cancel_response(xml: str | bytes | None) -> NormalizedResult:
    return _decode(xml, "confirmarCancelamentoResponse", CANCEL_OPERATION, "policy cancelled")
