"""Value template expansion with decoded names."""

from __future__ import annotations

from collections.abc import Sequence

from core.matching.models import SINGLE_SLOT

_NAME_SEPARATOR = ", "


def expand_value(value: str, names: Sequence[str]) -> str:
    """Replace ``<p>`` placeholders in ``value`` with decoded names.

    Rules:
    - No names: every placeholder is removed.
    - One placeholder: it receives all names, comma-separated.
    - Several placeholders: the first receives ``names[0]``, every other one
      receives the remaining names, comma-separated (empty when none remain).
    """

    if not names:
        return value.replace(SINGLE_SLOT, "")

    placeholder_count = value.count(SINGLE_SLOT)

    if placeholder_count == 1:
        return value.replace(SINGLE_SLOT, _NAME_SEPARATOR.join(names), 1)

    if placeholder_count > 1:
        head, tail = value.split(SINGLE_SLOT, 1)
        rest = _NAME_SEPARATOR.join(names[1:])
        return head + names[0] + tail.replace(SINGLE_SLOT, rest)

    return value.replace(SINGLE_SLOT, _NAME_SEPARATOR.join(names))
