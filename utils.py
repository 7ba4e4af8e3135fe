import base64
import datetime as _dt
import locale
import math
import re
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

T = TypeVar("T")

HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


def app_id_for_path(path: str) -> str:
    """Stable id for a bundle path (url-safe base64, padding stripped)."""
    return base64.urlsafe_b64encode(path.encode("utf-8")).decode("ascii").rstrip("=")


def path_for_app_id(app_id: str) -> str:
    pad = "=" * (-len(app_id) % 4)
    return base64.urlsafe_b64decode((app_id + pad).encode("ascii")).decode("utf-8")


def now_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds")


def timestamp_iso(epoch_seconds: float) -> str:
    return _dt.datetime.fromtimestamp(epoch_seconds, _dt.timezone.utc).isoformat(timespec="milliseconds")


def epoch_millis() -> int:
    return int(_dt.datetime.now(_dt.timezone.utc).timestamp() * 1000)


def name_sort_key(name: str) -> str:
    return locale.strxfrm((name or "").casefold())


def is_hex_color(value: object) -> bool:
    return isinstance(value, str) and bool(HEX_COLOR.match(value))


def unique_in_order(values: Iterable[str]) -> List[str]:
    seen = set()
    result: List[str] = []
    for value in values:
        if not isinstance(value, str) or not value:
            continue
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def filter_by_name(items: Sequence[T], query: str, name_of: Callable[[T], str]) -> List[T]:
    needle = (query or "").strip().casefold()
    if not needle:
        return list(items)
    return [item for item in items if needle in (name_of(item) or "").casefold()]


def page_count(total: int, page_size: int) -> int:
    if page_size <= 0:
        return 0
    return math.ceil(total / page_size)


def page_slice(items: Sequence[T], page: int, page_size: int) -> List[T]:
    if page_size <= 0 or page < 0:
        return []
    start = page * page_size
    return list(items[start:start + page_size])


def clamp_int(value: object, low: int, high: int) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return max(low, min(high, number))
