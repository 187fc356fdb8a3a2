from __future__ import annotations

from typing import List, Optional, Protocol

from certifier.app.schemas.ledger import (
    ChainInfo,
    LedgerRecord,
    RecordPage,
    SubmissionReceipt,
)


class LedgerGateway(Protocol):
    """
    Narrow contract the engine needs from an append-only ledger.

    Implementations must:
    - return None from fetch_record only for "no such record"
    - raise LedgerTransportError for every other failure
    - raise SubmissionError when anchoring fails
    - never retry on their own (a retried submit may anchor twice)
    """

    async def list_chains(self) -> List[ChainInfo]:
        ...

    async def submit(self, chain_id: str, envelope_bytes: bytes) -> SubmissionReceipt:
        ...

    async def fetch_record(self, chain_id: str, serial: int) -> Optional[LedgerRecord]:
        ...

    async def list_records(
        self,
        chain_id: str,
        page: int = 0,
        page_size: int = 10,
    ) -> RecordPage:
        ...
