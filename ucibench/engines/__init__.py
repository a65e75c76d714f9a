# UCI engine communication
from .uci_client import ClientState, SearchOutcome, UCIClient
from .uci_protocol import (BestMove, EngineId, EngineOption, Info, ReadyOk,
                           UCIEvent, UciOk, Unrecognized, parse_line)

__all__ = [
    "BestMove",
    "ClientState",
    "EngineId",
    "EngineOption",
    "Info",
    "ReadyOk",
    "SearchOutcome",
    "UCIClient",
    "UCIEvent",
    "UciOk",
    "Unrecognized",
    "parse_line",
]
