"""The two ordered task sequences shown to the signed-in user."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from shared_todo.client.models import TaskItem, with_completion
from shared_todo.ordering import move


@dataclass(frozen=True)
class Located:
  complete: bool
  index: int
  item: TaskItem


class TaskStore:
  """
  Holds the incomplete and complete sequences and merges fresh server lists
  into them.

  Merge rules:

  - an incomplete task that is still present and still incomplete keeps its
    local position; its content is replaced in place
  - newly appeared incomplete tasks are appended in server order
  - newly appeared complete tasks are prepended, so the most recently
    completed task is first
  - tasks missing from the fresh list are dropped

  A task with a completion toggle in flight is pinned to the value the user
  asked for; a refresh that still carries the old value does not move it back.
  Each pin carries a token, so only the latest toggle of a task can release it.
  """

  def __init__(self) -> None:
    self.incomplete: list[TaskItem] = []
    self.complete: list[TaskItem] = []
    # task id -> (token, requested completion)
    self._pinned: dict[str, tuple[int, bool]] = {}
    self._pin_seq = 0

  def __len__(self) -> int:
    return len(self.incomplete) + len(self.complete)

  def clear(self) -> None:
    self.incomplete.clear()
    self.complete.clear()
    self._pinned.clear()

  def incomplete_ids(self) -> list[str]:
    return [i.id for i in self.incomplete]

  def complete_ids(self) -> list[str]:
    return [i.id for i in self.complete]

  def find(self, task_id: str) -> Located | None:
    for idx, item in enumerate(self.incomplete):
      if item.id == task_id:
        return Located(complete=False, index=idx, item=item)
    for idx, item in enumerate(self.complete):
      if item.id == task_id:
        return Located(complete=True, index=idx, item=item)
    return None

  def pin(self, task_id: str, is_complete: bool) -> int:
    self._pin_seq += 1
    self._pinned[task_id] = (self._pin_seq, is_complete)
    return self._pin_seq

  def unpin(self, task_id: str, token: int) -> bool:
    """Release the pin if ``token`` is still the latest one; False when a newer toggle holds it."""
    current = self._pinned.get(task_id)
    if current is None or current[0] != token:
      return False
    del self._pinned[task_id]
    return True

  def is_pinned(self, task_id: str) -> bool:
    return task_id in self._pinned

  def merge(self, incomplete: Sequence[TaskItem], complete: Sequence[TaskItem]) -> None:
    fresh: dict[str, TaskItem] = {}
    server_order: list[str] = []
    for item in list(incomplete) + list(complete):
      if item.id in fresh:
        continue
      pinned = self._pinned.get(item.id)
      if pinned is not None and item.task.is_complete != pinned[1]:
        item = with_completion(item, pinned[1])
      fresh[item.id] = item
      server_order.append(item.id)

    kept_incomplete = [fresh[i.id] for i in self.incomplete if i.id in fresh and not fresh[i.id].task.is_complete]
    seen = {i.id for i in kept_incomplete}
    appended = [fresh[x] for x in server_order if x not in seen and not fresh[x].task.is_complete]

    kept_complete = [fresh[i.id] for i in self.complete if i.id in fresh and fresh[i.id].task.is_complete]
    seen = {i.id for i in kept_complete}
    prepended = [fresh[x] for x in server_order if x not in seen and fresh[x].task.is_complete]

    self.incomplete = kept_incomplete + appended
    self.complete = prepended + kept_complete

  def set_complete(self, task_id: str, is_complete: bool) -> Located | None:
    """
    Move a task to the sequence matching ``is_complete``: appended to the
    incomplete list, or put first in the complete list. Returns where the
    task was before the move.
    """
    found = self.find(task_id)
    if found is None:
      return None
    if found.complete == is_complete:
      return found
    moved = with_completion(found.item, is_complete)
    if found.complete:
      del self.complete[found.index]
      self.incomplete.append(moved)
    else:
      del self.incomplete[found.index]
      self.complete.insert(0, moved)
    return found

  def reorder(self, old_index: int, new_index: int) -> list[str]:
    self.incomplete = move(self.incomplete, old_index, new_index)
    return self.incomplete_ids()
