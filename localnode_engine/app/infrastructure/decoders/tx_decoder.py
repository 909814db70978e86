from __future__ import annotations

from localnode_engine.app.domain.errors import DecodeError
from localnode_engine.app.domain.models import DecodedTx


class JsonTxDecoder:
    """
    Decoder for JSON-encoded transactions:

        {"body": {"messages": [{"@type": ...}, ...], "memo": ...},
         "auth_info": {"fee": {...}, "signer_infos": [...]},
         "signatures": [...]}

    Unknown fields are rejected so a payload in another encoding never
    decodes into an empty transaction.
    """

    def decode(self, raw_tx: bytes) -> DecodedTx:
        try:
            return DecodedTx.model_validate_json(raw_tx)
        except ValueError as exc:
            raise DecodeError(
                f"expected a JSON encoded transaction: {exc}", stage="tx_decode"
            ) from exc
