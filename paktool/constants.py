# Magic and header
ARCHIVE_MAGIC = b"PACK"  # 4 bytes
HEADER_SIZE = 8  # magic[4] + data base offset u32

# Directory tables
COUNT_SIZE = 4
ENTRY_SIZE = 40
NAME_FIELD_SIZE = 32
MAX_NAME_LENGTH = NAME_FIELD_SIZE - 1  # one byte reserved for the terminator

U32_MAX = 0xFFFFFFFF

DEFAULT_CHUNK_SIZE = 1_048_576  # 1 MiB

# Default output extensions
ARCHIVE_EXT = ".pak"
OBFUSCATED_EXT = ".hse"
PLAIN_EXT = ".png"


def table_size(subdir_count: int, file_count: int) -> int:
    return COUNT_SIZE + subdir_count * ENTRY_SIZE + COUNT_SIZE + file_count * ENTRY_SIZE
