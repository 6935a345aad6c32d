from typing import Optional

MAX_FILE_SIZE = 20 * 1024 * 1024  # 20MB
MAX_TEXT_LENGTH = 10000

def check_media_size(size_bytes: Optional[int], max_bytes: int = MAX_FILE_SIZE) -> bool:
    # Unknown sizes are allowed, Telegram enforces its own limit on download
    if size_bytes is None:
        return True
    return size_bytes <= max_bytes

def check_text_length(text: Optional[str], max_length: int = MAX_TEXT_LENGTH) -> bool:
    return bool(text) and len(text) <= max_length
