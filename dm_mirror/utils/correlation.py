from __future__ import annotations


def make_correlation_id(op: str, original_id: str | int) -> str:
    """Return a stable id tying every log line of one handled event together.

    Format: "<op>-<originalId>", e.g. "edit-1234". Keep simple for grepability.
    """
    return f"{op}-{original_id}"
