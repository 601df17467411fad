import re

SERIAL_PREFIX = "KRB"
SERIAL_PATTERN = re.compile(r"^KRB-(\d{4})-(\d{3,})-(\d{6,})$")


def credit_serial_number(vintage: int, project_sequence: int, credit_sequence: int) -> str:
    """KRB-<vintage>-<project sequence, 3 digits>-<credit sequence, 6 digits>."""
    if project_sequence < 1 or credit_sequence < 1:
        raise ValueError("Serial sequences start at 1")
    return f"{SERIAL_PREFIX}-{vintage:04d}-{project_sequence:03d}-{credit_sequence:06d}"


def parse_serial_number(serial: str) -> tuple[int, int, int]:
    match = SERIAL_PATTERN.match(serial)
    if not match:
        raise ValueError(f"Not a credit serial number: {serial}")
    vintage, project_sequence, credit_sequence = match.groups()
    return int(vintage), int(project_sequence), int(credit_sequence)
