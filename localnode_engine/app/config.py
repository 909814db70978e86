"""Config file."""
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_TX_INDEXERS = ("kv", "null")


class Settings(BaseSettings):
    """
    Local node settings.

    Built once by the entry point and passed explicitly into the node
    lifecycle; there is no process-wide settings instance.
    """

    # NODE
    node_home: Path = Field(Path.home() / ".localnode", alias="NODE_HOME")
    genesis_file: Path | None = Field(None, alias="GENESIS_FILE")
    round_state_file: Path | None = Field(None, alias="ROUND_STATE_FILE")

    # DATABASE
    database_url: str = Field("", alias="DATABASE_URL")
    create_schema: bool = Field(False, alias="CREATE_SCHEMA")

    # INDEXING / EVENTS
    tx_indexer: str = Field("kv", alias="TX_INDEXER")
    event_bus_capacity: int = Field(100, alias="EVENT_BUS_CAPACITY", ge=1)

    @field_validator("tx_indexer")
    @classmethod
    def check_tx_indexer(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in _TX_INDEXERS:
            raise ValueError(f"tx_indexer must be one of {_TX_INDEXERS}, got {value!r}")
        return value

    @model_validator(mode="after")
    def assemble_paths(self) -> "Settings":
        if not self.genesis_file:
            self.genesis_file = self.node_home / "config" / "genesis.json"

        if not self.round_state_file:
            self.round_state_file = self.node_home / "data" / "round_state.json"

        if not self.database_url:
            db_path = self.node_home / "data" / "node.db"
            self.database_url = f"sqlite+aiosqlite:///{db_path}"

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )
