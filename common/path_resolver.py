"""
Dotted-path resolution into replica data trees.

Paths are strings such as ``"stats.hp"`` or ``"inventory.items.2"``. Map
containers are addressed by key, list containers by 1-based index. Resolution
never raises: a missing intermediate container is logged and reported as None,
and every caller treats that as a no-op.
"""

from typing import Any, List, Optional, Sequence, Tuple, Union

from common.constants import PATH_SEPARATOR
from common.logging_config import get_logger

logger = get_logger(__name__)

Container = Union[dict, list]
Path = Union[str, Sequence[str]]

_MISSING = object()


def split_path(path: Path) -> List[str]:
    """
    Split a dotted path into its segments.

    Args:
        path: Dotted path string, or an already split sequence of segments

    Returns:
        List of segments (empty for the root path)
    """
    if isinstance(path, str):
        if not path:
            return []
        return path.split(PATH_SEPARATOR)
    return list(path)


def join_path(*segments: str) -> str:
    """Join segments into a dotted path, skipping empty ones."""
    return PATH_SEPARATOR.join(str(segment) for segment in segments if segment != "")


def parent_path(path: str) -> str:
    """Return the path of the container holding ``path`` ("" for top-level keys)."""
    return join_path(*split_path(path)[:-1])


def is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


def to_index(key: Any) -> Optional[int]:
    """
    Convert a path segment into a 1-based list index.

    Returns:
        Integer index, or None if the segment is not an integer
    """
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key
    if isinstance(key, str) and key.isascii() and key.isdigit():
        return int(key)
    return None


def has_key(container: Container, key: Any) -> bool:
    """Check whether a key (or 1-based index) currently holds a value."""
    if isinstance(container, dict):
        return key in container
    if isinstance(container, list):
        index = to_index(key)
        return index is not None and 1 <= index <= len(container)
    return False


def read_key(container: Container, key: Any, default: Any = None) -> Any:
    """Read a key from a dict, or a 1-based index from a list."""
    if isinstance(container, dict):
        return container.get(key, default)
    if has_key(container, key):
        return container[to_index(key) - 1]
    return default


def can_write(container: Any, key: Any) -> bool:
    """Dicts accept any key; lists only accept indices that already hold a value."""
    if isinstance(container, dict):
        return True
    return isinstance(container, list) and has_key(container, key)


def write_key(container: Container, key: Any, value: Any) -> bool:
    """
    Write a value into a container.

    Args:
        container: Dict or list
        key: Dict key or 1-based list index
        value: Value to store

    Returns:
        True if written, False if the container cannot hold this key
    """
    if not can_write(container, key):
        return False
    if isinstance(container, dict):
        container[key] = value
    else:
        container[to_index(key) - 1] = value
    return True


def resolve_container(path: Path, root: Container) -> Optional[Any]:
    """
    Walk a path from the root and return the value it names.

    Used for operations whose path names the container itself (array
    operations, set_values). An empty path names the root.

    Args:
        path: Dotted path or list of segments
        root: Replica data tree

    Returns:
        The value at the path, or None if any segment could not be walked
    """
    pointer: Any = root
    for segment in split_path(path):
        if not is_container(pointer):
            logger.warning(
                f"Entry \"{segment}\" is not a valid member of replica hierarchy [path={path}]"
            )
            return None

        pointer = read_key(pointer, segment, _MISSING)
        if pointer is _MISSING:
            logger.warning(
                f"Entry \"{segment}\" is not a valid member of replica hierarchy [path={path}]"
            )
            return None

    return pointer


def resolve_pointer(path: Path, root: Container) -> Optional[Tuple[Any, str]]:
    """
    Resolve a path into the container holding its last segment.

    A path of at most one segment resolves against the root directly.

    Args:
        path: Dotted path or list of segments
        root: Replica data tree

    Returns:
        (container, final_key) tuple, or None if the path is empty or an
        intermediate container is missing
    """
    segments = split_path(path)

    if not segments:
        logger.warning("Cannot resolve a pointer for the empty path")
        return None

    if len(segments) == 1:
        return root, segments[0]

    container = resolve_container(segments[:-1], root)
    if container is None:
        return None

    return container, segments[-1]


def get_value(path: Path, root: Container, default: Any = None) -> Any:
    """Read the value at a path, or ``default`` if it cannot be resolved."""
    pointer = resolve_pointer(path, root)
    if pointer is None:
        return default

    container, key = pointer
    if not is_container(container):
        return default
    return read_key(container, key, default)
