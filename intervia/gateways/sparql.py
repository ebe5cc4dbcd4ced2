"""SPARQL statement builders for the transport network graph.

Identifiers are interpolated as prefixed local names, so every identifier is
checked against ``LOCAL_NAME_RE`` first; literal values are escaped.
"""

from __future__ import annotations

import re
from typing import Mapping

LOCAL_NAME_RE = re.compile(r"^[A-Za-z0-9_\-]+$")

_LITERAL_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def local_name(value: str) -> str:
    if not isinstance(value, str) or not LOCAL_NAME_RE.match(value):
        raise ValueError(f"Invalid graph identifier: {value!r}")
    return value


def string_literal(value: str) -> str:
    escaped = "".join(_LITERAL_ESCAPES.get(char, char) for char in str(value))
    return f'"{escaped}"^^xsd:string'


def prefixes(namespace: str) -> str:
    return f"PREFIX ex: <{namespace}>\nPREFIX xsd: <http://www.w3.org/2001/XMLSchema#>\n"


def service_definition_query(namespace: str, service_id: str) -> str:
    service = local_name(service_id)
    return prefixes(namespace) + f"""
SELECT ?merkleHash ?duration ?owner ?routeStop
WHERE {{
    ex:{service} ex:merkleHash ?merkleHash ;
                 ex:maxDurationMinutes ?duration ;
                 ex:followsRoute ?routeStop .
    OPTIONAL {{ ex:{service} ex:hasOwner ?owner . }}
}}
"""


def service_owner_query(namespace: str, service_id: str) -> str:
    service = local_name(service_id)
    return prefixes(namespace) + f"""
SELECT ?owner
WHERE {{
    ex:{service} ex:hasOwner ?owner .
}}
LIMIT 1
"""


def station_providers_query(namespace: str, station_id: str) -> str:
    station = local_name(station_id)
    return prefixes(namespace) + f"""
SELECT DISTINCT ?owner
WHERE {{
    ?service ex:followsRoute ex:{station} ;
             ex:hasOwner ?owner .
}}
"""


def agreement_exists_query(namespace: str, provider_a: str, provider_b: str) -> str:
    a = local_name(provider_a)
    b = local_name(provider_b)
    return prefixes(namespace) + f"""
ASK WHERE {{
    {{ ex:{a} ex:hasAgreementWith ex:{b} . }}
    UNION
    {{ ex:{b} ex:hasAgreementWith ex:{a} . }}
    UNION
    {{
        {{ ex:{a} ex:hasTemporalAgreement ?agreement . ?agreement ex:withTSP ex:{b} . }}
        UNION
        {{ ex:{b} ex:hasTemporalAgreement ?agreement . ?agreement ex:withTSP ex:{a} . }}
        OPTIONAL {{ ?agreement ex:validFrom ?validFrom . }}
        OPTIONAL {{ ?agreement ex:validUntil ?validUntil . }}
        FILTER((!BOUND(?validFrom) || ?validFrom <= NOW()) && (!BOUND(?validUntil) || ?validUntil >= NOW()))
    }}
}}
"""


def ticket_subject(ticket_id: str) -> str:
    raw = ticket_id[2:] if ticket_id.lower().startswith("0x") else ticket_id
    return local_name(f"TICKET_{raw}")


def insert_ticket_record(
    namespace: str, ticket_id: str, owner: str, service_id: str, ticket_type: str
) -> str:
    subject = ticket_subject(ticket_id)
    service = local_name(service_id)
    return prefixes(namespace) + f"""
INSERT DATA {{
    ex:{subject} a ex:Ticket ;
        ex:onChainID {string_literal(ticket_id)} ;
        ex:hasOwner {string_literal(owner)} ;
        ex:forService ex:{service} ;
        ex:ticketType {string_literal(ticket_type)} .
}}
"""


def replace_service_digests(namespace: str, digests: Mapping[str, str]) -> str:
    if not digests:
        raise ValueError("At least one service digest is required")
    services = [local_name(service_id) for service_id in digests]
    filter_list = ", ".join(f"ex:{service}" for service in services)
    insert_lines = "\n".join(
        f"    ex:{service} ex:merkleHash {string_literal(digests[service])} ." for service in services
    )
    return prefixes(namespace) + f"""
DELETE {{
    ?service ex:merkleHash ?oldHash .
}}
WHERE {{
    ?service ex:merkleHash ?oldHash .
    FILTER(?service IN ({filter_list}))
}};

INSERT DATA {{
{insert_lines}
}}
"""
