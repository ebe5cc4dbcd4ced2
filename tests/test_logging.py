import logging

from intervia.core.config import Settings
from intervia.core.logging import build_resource, configure_logging, init_tracer, parse_headers, shutdown_tracer


def test_parse_headers_skips_malformed_pairs():
    assert parse_headers(None) == {}
    assert parse_headers("authorization=Bearer abc, x-team = intervia,broken,=empty") == {
        "authorization": "Bearer abc",
        "x-team": "intervia",
    }


def test_configure_logging_quietens_client_libraries():
    logger = configure_logging(Settings(log_level="debug"))

    assert logger.name == "intervia"
    assert logger.level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("web3").level == logging.WARNING


def test_tracer_is_not_initialised_when_disabled():
    provider = init_tracer(Settings(otel_enabled=False))

    assert provider is None
    shutdown_tracer(provider)


def test_resource_describes_the_middleware_instance():
    settings = Settings(otel_service_name="intervia-gateway", environment="staging", stardog_database="network")

    attributes = build_resource(settings).attributes

    assert attributes["service.name"] == "intervia-gateway"
    assert attributes["service.namespace"] == "intervia"
    assert attributes["deployment.environment"] == "staging"
    assert attributes["intervia.graph.database"] == "network"
