def compute_backoff(attempt: int, base: float, maximum: float) -> float:
    """Delay before retrying after failed attempt number `attempt` (1-based).

    base * 2 ** (attempt - 1), capped at maximum.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    return min(base * 2 ** (attempt - 1), maximum)
