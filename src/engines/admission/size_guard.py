def is_acceptable(byte_length: int, max_bytes: int) -> bool:
    """True when the payload fits the size limit. Exactly max_bytes is accepted."""
    return byte_length <= max_bytes
