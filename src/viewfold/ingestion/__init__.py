"""Ingestion layer.

Adapters that turn raw snapshot collections and named stream payloads
into normalized records and :class:`viewfold.state.events.InboundEvent`s.
"""

__all__: list[str] = []
