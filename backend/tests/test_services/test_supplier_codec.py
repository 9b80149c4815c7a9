"""
Tests for the carrier SOAP codec.

Tests cover:
- Issue and cancel envelopes (WS-Security header, CDATA parameters)
- Required field checks before anything is sent
- Decoding of CDATA, entity-escaped and inline result documents
- Diagnostics for empty, malformed and unexpected responses
"""
import xml.etree.ElementTree as ET
from datetime import date

import pytest

from app.core.exceptions import SupplierPreconditionError
from app.services.supplier.codec import (
    CARRIER_NS,
    FAILURE_PROTOCOL,
    FAILURE_REJECTED,
    SOAPENV_NS,
    WSSE_NS,
    CancelPolicyRequest,
    Credentials,
    IssuePolicyRequest,
    NormalizedResult,
    decode_cancel_response,
    decode_issue_response,
    encode_cancel_request,
    encode_issue_request,
    normalize_document,
    normalize_sex,
)
from support import load_fixture, soap_response

CREDENTIALS = Credentials(username="partner-user", password="s3cr3t-pass")


def _issue_request(**overrides) -> IssuePolicyRequest:
    values = dict(
        product_code="10124",
        sales_channel="SITE",
        partner_operation_id="a1b2c3d4e5f60718293a4b5c6d7e8f90",
        plan_code="2",
        premium="3.96",
        insured_name="Maria Souza",
        birth_date=date(1977, 5, 18),
        sex="F",
        state_code="mg",
        document_number="123.456.789-09",
        coverage_start=date(2026, 10, 1),
        coverage_end=date(2027, 9, 30),
    )
    values.update(overrides)
    return IssuePolicyRequest(**values)


def _parameters(envelope: str) -> ET.Element:
    root = ET.fromstring(envelope)
    node = root.find(f".//{{{CARRIER_NS}}}parametros")
    assert node is not None
    return ET.fromstring(node.text)


class TestEncodeIssueRequest:
    """Test the contratarSeguro envelope."""

    def test_envelope_carries_credentials_and_operation(self):
        """Test: header has the username token and body the partner fields."""
        envelope = encode_issue_request(_issue_request(), CREDENTIALS)
        root = ET.fromstring(envelope)

        assert root.tag == f"{{{SOAPENV_NS}}}Envelope"
        token = root.find(f"{{{SOAPENV_NS}}}Header/{{{WSSE_NS}}}Security/{{{WSSE_NS}}}UsernameToken")
        assert token.find(f"{{{WSSE_NS}}}Username").text == "partner-user"
        assert token.find(f"{{{WSSE_NS}}}Password").text == "s3cr3t-pass"

        operation = root.find(f"{{{SOAPENV_NS}}}Body/{{{CARRIER_NS}}}contratarSeguro")
        assert operation.find(f"{{{CARRIER_NS}}}produto").text == "10124"
        assert operation.find(f"{{{CARRIER_NS}}}canalVenda").text == "SITE"

    def test_partner_operation_id_truncated_to_14_chars(self):
        """Test: the token is cut to the carrier's field length."""
        envelope = encode_issue_request(_issue_request(), CREDENTIALS)
        root = ET.fromstring(envelope)
        node = root.find(f".//{{{CARRIER_NS}}}operacaoParceiro")
        assert node.text == "a1b2c3d4e5f607"

    def test_parameters_travel_as_cdata(self):
        """Test: the inner document is wrapped in CDATA, not escaped."""
        envelope = encode_issue_request(_issue_request(), CREDENTIALS)
        assert "<![CDATA[<parametros>" in envelope
        assert "&lt;parametros&gt;" not in envelope

    def test_parameters_are_normalized(self):
        """Test: document digits only, upper-case state, ISO dates."""
        params = _parameters(encode_issue_request(_issue_request(), CREDENTIALS))

        assert params.findtext("documento") == "12345678909"
        assert params.findtext("tipoDocumento") == "C"
        assert params.findtext("uf") == "MG"
        assert params.findtext("sexo") == "F"
        assert params.findtext("dataNascimento") == "1977-05-18"
        assert params.findtext("inicioVigencia") == "2026-10-01"
        assert params.findtext("fimVigencia") == "2027-09-30"
        assert params.findtext("planoProduto") == "2"
        assert params.findtext("premioSeguro") == "3.96"
        assert params.findtext("nomeSegurado") == "Maria Souza"

    def test_unknown_sex_defaults_to_male(self):
        """Test: 'NI' and blanks are sent as 'M'."""
        params = _parameters(encode_issue_request(_issue_request(sex="NI"), CREDENTIALS))
        assert params.findtext("sexo") == "M"

    def test_name_with_markup_characters_survives(self):
        """Test: ampersands in the insured name stay well-formed."""
        params = _parameters(encode_issue_request(_issue_request(insured_name="Souza & Filhos"), CREDENTIALS))
        assert params.findtext("nomeSegurado") == "Souza & Filhos"

    def test_missing_fields_raise_precondition(self):
        """Test: empty required fields are reported together."""
        with pytest.raises(SupplierPreconditionError) as excinfo:
            encode_issue_request(_issue_request(document_number="", birth_date=None), CREDENTIALS)

        assert set(excinfo.value.missing) == {"birth_date", "document_number"}

    def test_masked_credentials_hide_password(self):
        """Test: audit copies of the envelope never contain the password."""
        envelope = encode_issue_request(_issue_request(), CREDENTIALS.masked())
        assert "s3cr3t-pass" not in envelope
        assert "****" in envelope


class TestEncodeCancelRequest:
    """Test the confirmarCancelamento envelope."""

    def test_cancel_fields(self):
        """Test: operation number, channel and invoice period are sent."""
        envelope = encode_cancel_request(
            CancelPolicyRequest(operation_number="740442", sales_channel="SITE", invoice_period="102026"),
            CREDENTIALS,
        )
        operation = ET.fromstring(envelope).find(f".//{{{CARRIER_NS}}}confirmarCancelamento")

        assert operation.findtext(f"{{{CARRIER_NS}}}numeroOperacao") == "740442"
        assert operation.findtext(f"{{{CARRIER_NS}}}canalVenda") == "SITE"
        assert operation.findtext(f"{{{CARRIER_NS}}}mesAnoFatura") == "102026"

    def test_missing_operation_number(self):
        """Test: a blank operation number is a precondition failure."""
        with pytest.raises(SupplierPreconditionError) as excinfo:
            encode_cancel_request(
                CancelPolicyRequest(operation_number="  ", sales_channel="SITE", invoice_period="102026"),
                CREDENTIALS,
            )
        assert excinfo.value.missing == ["operation_number"]


class TestDecodeIssueResponse:
    """Test decoding of contratarSeguro responses."""

    def test_success_with_cdata_and_declaration(self):
        """Test: golden success response yields policy identifiers."""
        result = decode_issue_response(load_fixture("issue_success_response.xml"))

        assert result.success is True
        assert result.return_code == "0"
        assert result.return_message == "Contratacao efetuada com sucesso"
        assert result.policy_number == "1020304050"
        assert result.certificate_number == "000123456"
        assert result.operation_number == "740442"
        assert result.data["apolice"]["ramo"] == "82"
        assert result.failure_kind is None

    def test_rejection_with_escaped_document(self):
        """Test: entity-escaped inner document is decoded the same way."""
        result = decode_issue_response(load_fixture("issue_rejected_response.xml"))

        assert result.success is False
        assert result.return_code == "1"
        assert result.return_message == "invalid document"
        assert result.failure_kind == FAILURE_REJECTED

    def test_bytes_input(self):
        """Test: raw bytes from the transport are accepted."""
        result = decode_issue_response(load_fixture("issue_success_response.xml").encode("utf-8"))
        assert result.success is True

    def test_missing_message_gets_default(self):
        """Test: success without retornoMsg reports 'policy issued'."""
        xml = soap_response("contratarSeguro", "<r><retorno>0</retorno></r>")
        assert decode_issue_response(xml).return_message == "policy issued"

    def test_rejection_without_message(self):
        """Test: non-zero code without text names the code."""
        xml = soap_response("contratarSeguro", "<r><retorno>7</retorno></r>")
        result = decode_issue_response(xml)
        assert result.success is False
        assert result.return_message == "carrier returned code 7"

    def test_inline_result_document(self):
        """Test: a result element with child nodes instead of text."""
        xml = (
            '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/"><soap:Body>'
            '<ns2:contratarSeguroResponse xmlns:ns2="urn:br.com.sulamerica.canalvenda.ws">'
            "<ns2:contratarSeguro><retornoContratacao><retorno>0</retorno>"
            "<apolice><numApolice>55</numApolice></apolice></retornoContratacao></ns2:contratarSeguro>"
            "</ns2:contratarSeguroResponse></soap:Body></soap:Envelope>"
        )
        result = decode_issue_response(xml)
        assert result.success is True
        assert result.policy_number == "55"

    def test_unexpected_namespace_falls_back_to_local_names(self):
        """Test: a different carrier namespace is still found by local name."""
        xml = (
            '<S:Envelope xmlns:S="http://schemas.xmlsoap.org/soap/envelope/"><S:Body>'
            '<x:contratarSeguroResponse xmlns:x="urn:other">'
            "<x:contratarSeguro><![CDATA[<r><retorno>0</retorno></r>]]></x:contratarSeguro>"
            "</x:contratarSeguroResponse></S:Body></S:Envelope>"
        )
        assert decode_issue_response(xml).success is True


class TestDecodeDiagnostics:
    """Test that bad responses become failures instead of exceptions."""

    @pytest.mark.parametrize("payload", [None, "", "   ", b""])
    def test_empty_response(self, payload):
        result = decode_issue_response(payload)
        assert result.success is False
        assert result.failure_kind == FAILURE_PROTOCOL
        assert result.return_message == "empty response"

    def test_malformed_response(self):
        result = decode_issue_response("<html><body>502 Bad Gateway")
        assert result.failure_kind == FAILURE_PROTOCOL
        assert result.return_message.startswith("malformed response")

    def test_response_node_not_found(self):
        xml = soap_response("somethingElse", "<r><retorno>0</retorno></r>")
        result = decode_issue_response(xml)
        assert result.return_message == "response node not found"

    def test_soap_fault(self):
        xml = (
            '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/"><soap:Body>'
            "<soap:Fault><faultcode>soap:Server</faultcode>"
            "<faultstring>Authentication failed</faultstring></soap:Fault>"
            "</soap:Body></soap:Envelope>"
        )
        result = decode_issue_response(xml)
        assert result.failure_kind == FAILURE_PROTOCOL
        assert result.return_message == "SOAP fault: Authentication failed"

    def test_empty_inner_document(self):
        xml = soap_response("contratarSeguro", "")
        assert decode_issue_response(xml).return_message == "inner document is empty"

    def test_inner_document_not_xml(self):
        xml = soap_response("contratarSeguro", "service unavailable")
        assert decode_issue_response(xml).return_message == "inner document is not XML"

    def test_malformed_inner_document(self):
        xml = soap_response("contratarSeguro", "<r><retorno>0</r>")
        assert decode_issue_response(xml).return_message.startswith("malformed inner document")


class TestDecodeCancelResponse:
    """Test decoding of confirmarCancelamento responses."""

    def test_success(self):
        result = decode_cancel_response(load_fixture("cancel_success_response.xml"))
        assert result.success is True
        assert result.return_message == "Cancelamento confirmado"
        assert result.operation_number == "740442"

    def test_issue_response_is_not_a_cancel_response(self):
        """Test: operation names are not interchangeable."""
        result = decode_cancel_response(load_fixture("issue_success_response.xml"))
        assert result.success is False
        assert result.return_message == "response node not found"


class TestHelpers:
    def test_normalize_document(self):
        assert normalize_document("123.456.789-09") == "12345678909"
        assert normalize_document("11.222.333/0001-81") == "11222333000181"
        assert normalize_document(None) == ""

    def test_normalize_sex(self):
        assert normalize_sex("f") == "F"
        assert normalize_sex("NI") == "M"
        assert normalize_sex(None) == "M"

    def test_result_dict_omits_envelopes(self):
        """Test: metadata copies never carry the raw XML."""
        result = NormalizedResult(success=True, raw="<xml/>", request_payload="<xml/>")
        payload = result.to_dict()
        assert "raw" not in payload
        assert "request_payload" not in payload
        assert payload["success"] is True
