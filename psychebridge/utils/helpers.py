"""
Utility helpers for the clinical training system

Simple utility functions for ID, timestamp and filename generation.
"""

import time
import uuid
from datetime import datetime


def now_ms():
    """
    Current wall-clock time in epoch milliseconds

    Used for interaction timestamps, session start times and
    evaluation times. Informational only, never used for ordering.

    Returns:
        int: Milliseconds since the epoch
    """
    return int(time.time() * 1000)


def generate_short_id(short=True):
    """
    Generate unique identifier

    Args:
        short (bool): If True, return 8-char hex. If False, return full UUID.

    Returns:
        str: Hex identifier

    Examples:
        >>> generate_short_id()
        'a3f7e2b9'
    """
    full_id = uuid.uuid4().hex
    return full_id[:8] if short else full_id


def generate_session_id():
    """
    Generate unique simulation session identifier

    Format: sess-{epoch_ms}-{short_uuid}

    Returns:
        str: Session ID

    Examples:
        >>> generate_session_id()
        'sess-1760688000000-a3f7e2b9'
    """
    return f"sess-{now_ms()}-{generate_short_id(short=True)}"


def generate_report_filename(session_id, prefix="report", extension="json"):
    """
    Generate timestamped filename for a session report

    Format: {prefix}_{session_id}_{YYYYMMDD_HHMMSS}.{extension}

    Args:
        session_id (str): Session the report belongs to
        prefix (str): Filename prefix
        extension (str): File extension (without dot)

    Returns:
        str: Generated filename

    Examples:
        >>> generate_report_filename("sess-1760688000000-a3f7e2b9")
        'report_sess-1760688000000-a3f7e2b9_20261017_153045.json'
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{session_id}_{timestamp}.{extension}"
