from typing import List

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/catalog.db"

    # Chunking (must stay under the medium's per-key ceiling)
    chunk_size: int = 4 * 1024 * 1024
    medium_value_limit: int = 5 * 1024 * 1024

    records_prefix: str = "books_chunk_"
    records_index_key: str = "books_chunk_info"
    trash_prefix: str = "trash_chunk_"
    trash_index_key: str = "trash_chunk_info"

    # Obfuscation only, not a secret in any meaningful sense
    transform_key: SecretStr = SecretStr("book-system-secure-key")

    numeral_fields: str = "series"
    default_dedup_fields: str = "title,author,isbn"

    trash_retention_days: int = 30
    max_backup_count: int = 10

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @property
    def numeral_field_list(self) -> List[str]:
        return _split_csv(self.numeral_fields)

    @property
    def dedup_field_list(self) -> List[str]:
        return _split_csv(self.default_dedup_fields)


def _split_csv(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


settings = Settings()
