import math
from typing import Iterable, List, Optional, Union

# 100 years; anything past this cannot be added to the current time safely
MAX_TTL = 100 * 365 * 24 * 60 * 60


def normalize_ttl(ttl, param_name="ttl") -> int:
    """
    Coerce a TTL argument to whole seconds.
    None and non-positive values mean "no expiry" and come back as 0.
    Raises TypeError for values that are not numbers, and ValueError for
    NaN, infinities and values above MAX_TTL.
    """
    if ttl is None:
        return 0
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
        raise TypeError(f"{param_name} must be a number of seconds, got {type(ttl).__name__}")
    if isinstance(ttl, float) and not math.isfinite(ttl):
        raise ValueError(f"{param_name} must be a finite number of seconds, got {ttl}")
    if ttl > MAX_TTL:
        raise ValueError(f"{param_name} must be at most {MAX_TTL} seconds, got {ttl}")
    return max(0, int(ttl))


def ensure_list(values: Optional[Union[str, Iterable[str]]]) -> List[str]:
    """
    Turn a single reference or an iterable of references into a list
    without duplicates, keeping the original order.
    """
    if values is None:
        return []
    if isinstance(values, (str, bytes)):
        values = [values]
    result = []
    seen = set()
    for value in values:
        if isinstance(value, bytes):
            value = value.decode('utf-8')
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result
