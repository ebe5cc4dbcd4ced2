"""Typed access to the ledger and the knowledge graph."""

from .base import GraphGateway, LedgerGateway
from .graph import StardogGraphGateway
from .ledger import Web3LedgerGateway

__all__ = [
    "GraphGateway",
    "LedgerGateway",
    "StardogGraphGateway",
    "Web3LedgerGateway",
]
