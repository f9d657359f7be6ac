"""MessengerFlow inbox: webhook ingestion, state reconciliation and realtime dispatch."""

__version__ = "1.0.0"
