"""Reader configuration with environment variable override support.

Every knob can be set three ways, later wins:
    1. the defaults below
    2. PST2DIR_* environment variables (ReaderConfig.from_env)
    3. keyword arguments / CLI flags
"""

import os
from dataclasses import dataclass, fields, replace


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in ('0', 'false', 'no', 'off', '')


def _env_int(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return int(value)


@dataclass(frozen=True)
class ReaderConfig:
    """Limits and switches for decoding an archive."""

    # Validate dwCRC of header, pages and blocks
    verify_crc: bool = True
    # XBLOCK = 1, XXBLOCK = 2; anything deeper is a corrupt pointer table
    max_data_tree_depth: int = 2
    # Maximum levels walked in the NBT/BBT before giving up
    max_btree_depth: int = 16
    # Number of 512-byte B-tree pages kept in memory
    page_cache_size: int = 256
    # Number of decoded heap blocks kept per Heap-on-Node
    heap_block_cache_size: int = 8
    # Codec for PT_STRING8 values when the object carries no code page
    string8_encoding: str = 'cp1252'
    # Buffer size used when streaming attachments to disk
    stream_chunk_size: int = 8176

    @classmethod
    def from_env(cls, **overrides):
        """Build a config from PST2DIR_* environment variables."""
        config = cls(
            verify_crc=_env_bool('PST2DIR_VERIFY_CRC', cls.verify_crc),
            max_data_tree_depth=_env_int('PST2DIR_MAX_DATA_TREE_DEPTH',
                                         cls.max_data_tree_depth),
            max_btree_depth=_env_int('PST2DIR_MAX_BTREE_DEPTH',
                                     cls.max_btree_depth),
            page_cache_size=_env_int('PST2DIR_PAGE_CACHE_SIZE',
                                     cls.page_cache_size),
            heap_block_cache_size=_env_int('PST2DIR_HEAP_BLOCK_CACHE_SIZE',
                                           cls.heap_block_cache_size),
            string8_encoding=os.getenv('PST2DIR_STRING8_ENCODING',
                                       cls.string8_encoding),
            stream_chunk_size=_env_int('PST2DIR_STREAM_CHUNK_SIZE',
                                       cls.stream_chunk_size),
        )
        return config.with_overrides(**overrides)

    def with_overrides(self, **overrides):
        """Return a copy with the given non-None fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown config option(s): {', '.join(sorted(unknown))}")
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values) if values else self


DEFAULT_CONFIG = ReaderConfig()
