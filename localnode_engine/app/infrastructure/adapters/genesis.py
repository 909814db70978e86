from __future__ import annotations

import logging
from pathlib import Path

from localnode_engine.app.domain.models import GenesisDoc


logger = logging.getLogger(__name__)


class FileGenesisProvider:
    """
    Loads genesis.json once and serves the cached document afterwards.

    A missing or malformed file fails on the first call, which the
    lifecycle makes during bootstrap.
    """

    def __init__(self, *, path: Path) -> None:
        self._path = path
        self._doc: GenesisDoc | None = None

    def genesis_doc(self) -> GenesisDoc:
        if self._doc is None:
            self._doc = GenesisDoc.model_validate_json(self._path.read_bytes())
            logger.info(
                "Loaded genesis: chain_id=%s, initial_height=%s",
                self._doc.chain_id,
                self._doc.initial_height,
            )
        return self._doc
