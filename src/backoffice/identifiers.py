"""Human-readable document numbers and public link tokens."""
import secrets
import string
import time
import uuid

_BASE36 = string.digits + string.ascii_uppercase


def epoch_ms() -> int:
    return int(time.time() * 1000)


def random_base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def new_uuid() -> str:
    return str(uuid.uuid4())


def agreement_number() -> str:
    """AGR-1717171717171-X9K2M4P0Q"""
    return f"AGR-{epoch_ms()}-{random_base36(9)}"


def request_number(whatsapp: bool = False) -> str:
    prefix = "REQ-WA" if whatsapp else "REQ"
    return f"{prefix}-{epoch_ms()}-{random_base36(6)}"


def invoice_number(year: int, sequence: int) -> str:
    """INV-2025-K3P0001; the random part keeps numbers unique after deletions."""
    return f"INV-{year}-{random_base36(3)}{sequence:04d}"


def receipt_number(year: int, sequence: int) -> str:
    return f"REC-{year}-{random_base36(3)}{sequence:04d}"
