import uuid
from typing import Iterable, List, Optional, Tuple, TypeVar

T = TypeVar('T')


def ensure(value: Optional[T], message: str = "Value is None") -> T:
    """Ensure a value is not None, raising RuntimeError if it is.

    Args:
        value: The value to check
        message: Error message used when the value is missing

    Returns:
        The value if it is not None

    Raises:
        RuntimeError: If the value is None
    """
    if value is None:
        raise RuntimeError(message)
    return value


def windowed_pairs(items: Iterable[T]) -> List[Tuple[Optional[T], T]]:
    """Pair each item with its predecessor; the first item is paired with None."""
    result: List[Tuple[Optional[T], T]] = []
    prev: Optional[T] = None
    for item in items:
        result.append((prev, item))
        prev = item
    return result


def generate_commit_id(length: int = 8) -> str:
    """Generate a new commit id derived from a random UUID."""
    if not 8 <= length <= 20:
        raise ValueError(f"length must be between 8 and 20, was {length}")
    raw = uuid.uuid4().hex
    return (raw[:8] + raw[-12:])[:length]
