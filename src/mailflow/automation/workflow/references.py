"""``{{path}}`` references inside step inputs.

A reference body is a dotted path. Its first segment is ``trigger`` or a step id; the
rest navigates into the trigger payload or that step's output envelope. Resolution is
pure: it never raises and never mutates its input. Anything it cannot resolve stays
verbatim, so a second pass changes nothing when the substituted values are plain text.
Substituted values are not re-scanned within a pass. A value that itself contains
placeholder text, such as an email subject reading "{{trigger.email_id}}", comes out
verbatim and is resolved if the result is resolved again.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .context import ExecutionContext

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

TRIGGER_ROOT = "trigger"


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

UnresolvedHook = Callable[[str], None]


def split_reference(reference: str) -> tuple[str, list[str]]:
    """Split ``"step1.data.message_id"`` into ``("step1", ["data", "message_id"])``."""

    parts = [part.strip() for part in reference.strip().split(".")]
    return parts[0], [part for part in parts[1:] if part]


def navigate(value: Any, path: Sequence[str]) -> Any:
    """Walk ``path`` through mappings (by key) and lists (by index).

    Returns ``MISSING`` when a segment is absent or when ``None`` is met on the way.
    """

    current = value
    for segment in path:
        if current is None:
            return MISSING
        if isinstance(current, Mapping):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, Sequence) and not isinstance(current, str | bytes):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return MISSING if current is None else current


def iter_references(value: Any) -> Iterator[tuple[str, str]]:
    """Yield ``(location, reference)`` for every placeholder found in ``value``.

    ``location`` is the dotted key path of the string holding the placeholder.
    """

    yield from _iter_references(value, "")


def _iter_references(value: Any, location: str) -> Iterator[tuple[str, str]]:
    if isinstance(value, str):
        for match in PLACEHOLDER_RE.finditer(value):
            yield location, match.group(1).strip()
    elif isinstance(value, Mapping):
        for key, item in value.items():
            yield from _iter_references(item, f"{location}.{key}" if location else str(key))
    elif isinstance(value, list | tuple):
        for index, item in enumerate(value):
            yield from _iter_references(item, f"{location}.{index}" if location else str(index))


def resolve_references(
    value: Any,
    context: ExecutionContext,
    *,
    on_unresolved: UnresolvedHook | None = None,
) -> Any:
    """Return a copy of ``value`` with every resolvable placeholder substituted.

    A string that is exactly one placeholder is replaced by the referenced value itself,
    keeping its type. Placeholders embedded in text are interpolated; non-string values
    are rendered as JSON.
    """

    hook = on_unresolved or _log_unresolved
    return _resolve(value, context, hook)


def _resolve(value: Any, context: ExecutionContext, hook: UnresolvedHook) -> Any:
    if isinstance(value, str):
        return _resolve_string(value, context, hook)
    if isinstance(value, Mapping):
        return {key: _resolve(item, context, hook) for key, item in value.items()}
    if isinstance(value, list):
        return [_resolve(item, context, hook) for item in value]
    if isinstance(value, tuple):
        return tuple(_resolve(item, context, hook) for item in value)
    return value


def _resolve_string(text: str, context: ExecutionContext, hook: UnresolvedHook) -> Any:
    whole = PLACEHOLDER_RE.fullmatch(text.strip())
    if whole is not None:
        reference = whole.group(1).strip()
        resolved = context.lookup(reference)
        if resolved is MISSING:
            hook(reference)
            return text
        return resolved

    def _substitute(match: re.Match[str]) -> str:
        reference = match.group(1).strip()
        resolved = context.lookup(reference)
        if resolved is MISSING:
            hook(reference)
            return match.group(0)
        if isinstance(resolved, str):
            return resolved
        return json.dumps(resolved, ensure_ascii=False, default=str)

    return PLACEHOLDER_RE.sub(_substitute, text)


def _log_unresolved(reference: str) -> None:
    logger.warning("Unresolved reference left in place", extra={"reference": reference})
