"""
Rate-limit classification for oracle failures.
"""


def is_rate_limited(error: BaseException) -> bool:
    """
    Whether an oracle error is retryable throttling.

    Matches "rate" or "429" anywhere in the message (case-insensitive), or a
    structured status of 429 as carried by openai's APIStatusError
    (`status_code`) or other clients (`status`).
    """
    message = str(error).lower()
    if "rate" in message or "429" in message:
        return True

    for attr in ("status_code", "status"):
        if getattr(error, attr, None) == 429:
            return True

    return False
