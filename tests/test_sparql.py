import pytest

from intervia.gateways import sparql

NS = "https://intervia.space/intervia#"


def test_identifiers_are_validated_before_interpolation():
    assert sparql.local_name("S13") == "S13"
    with pytest.raises(ValueError):
        sparql.service_definition_query(NS, "L1E } ; DROP ALL ; {")
    with pytest.raises(ValueError):
        sparql.station_providers_query(NS, "ex:S1")


def test_string_literals_are_escaped():
    assert sparql.string_literal('say "hi"\n') == '"say \\"hi\\"\\n"^^xsd:string'


def test_service_definition_query_reads_route_and_optional_owner():
    query = sparql.service_definition_query(NS, "L1E")

    assert query.startswith(f"PREFIX ex: <{NS}>")
    assert "ex:L1E ex:merkleHash ?merkleHash" in query
    assert "ex:followsRoute ?routeStop" in query
    assert "OPTIONAL { ex:L1E ex:hasOwner ?owner . }" in query


def test_agreement_query_checks_both_directions_and_validity_window():
    query = sparql.agreement_exists_query(NS, "T1", "T3")

    assert "\nASK WHERE {" in query
    assert "ex:T1 ex:hasAgreementWith ex:T3" in query
    assert "ex:T3 ex:hasAgreementWith ex:T1" in query
    assert "ex:withTSP ex:T3" in query
    assert "?validUntil >= NOW()" in query


def test_ticket_record_uses_ticket_subject():
    ticket_id = "0x" + "ab" * 32
    statement = sparql.insert_ticket_record(NS, ticket_id, "0xBob", "L1E", "r")

    assert sparql.ticket_subject(ticket_id) == "TICKET_" + "ab" * 32
    assert "INSERT DATA" in statement
    assert f"ex:TICKET_{'ab' * 32} a ex:Ticket" in statement
    assert f'ex:onChainID "{ticket_id}"^^xsd:string' in statement
    assert "ex:forService ex:L1E" in statement


def test_replace_service_digests_deletes_then_inserts():
    statement = sparql.replace_service_digests(NS, {"L1E": "0x01", "L2B": "0x02"})

    assert "FILTER(?service IN (ex:L1E, ex:L2B))" in statement
    assert statement.index("DELETE") < statement.index("INSERT DATA")
    assert 'ex:L2B ex:merkleHash "0x02"^^xsd:string .' in statement
    with pytest.raises(ValueError):
        sparql.replace_service_digests(NS, {})
