"""Per-user manual ordering of a task list.

A user's drag ordering is stored as integer ranks keyed by task id. Tasks the
user never reordered have no rank and fall back to newest-first.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, Mapping, Sequence, TypeVar

T = TypeVar("T")


def resolve_order(
  items: Iterable[T],
  ranks: Mapping[str, int],
  *,
  key: Callable[[T], str],
  created: Callable[[T], datetime],
) -> list[T]:
  """
  Sort ``items`` by the three-tier rule:

  - a ranked task sorts before any unranked task
  - among ranked tasks, the lower rank sorts first
  - among unranked tasks, the more recently created sorts first

  The sort is stable, so re-applying it to its own output changes nothing.
  """

  def sort_key(item: T) -> tuple[int, int, float]:
    rank = ranks.get(key(item))
    if rank is not None:
      return (0, int(rank), 0.0)
    return (1, 0, -created(item).timestamp())

  return sorted(items, key=sort_key)


def move(seq: Sequence[T], old_index: int, new_index: int) -> list[T]:
  """Remove the element at ``old_index`` and insert it at ``new_index``."""
  out = list(seq)
  if not out:
    return out
  if not (0 <= old_index < len(out)):
    raise IndexError(f"old_index {old_index} out of range")
  item = out.pop(old_index)
  out.insert(max(0, min(new_index, len(out))), item)
  return out


def ranks_for(task_ids: Sequence[str]) -> list[tuple[str, int]]:
  """Consecutive ranks 0..N-1 for a full visual order."""
  return [(task_id, idx) for idx, task_id in enumerate(task_ids)]
