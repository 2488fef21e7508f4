from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List, Optional

from core.state import ActionKind, EditorSettings, EditState, identity_state

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    index: int
    label: str
    is_current: bool
    is_future: bool


class EditHistory:
    """
    Linear list of complete EditState snapshots plus a pointer.

    Entry 0 is the identity state and is never removed. Entries after the
    pointer are the redo future; committing a new edit drops them.
    """

    def __init__(self, initial: Optional[EditState] = None, settings: Optional[EditorSettings] = None):
        self._settings = settings or EditorSettings()
        self._states: List[EditState] = [initial if initial is not None else identity_state()]
        self._index = 0

    def __len__(self) -> int:
        return len(self._states)

    @property
    def index(self) -> int:
        return self._index

    @property
    def current(self) -> EditState:
        return self._states[self._index]

    @property
    def states(self) -> tuple[EditState, ...]:
        return tuple(self._states)

    def can_undo(self) -> bool:
        return self._index > 0

    def can_redo(self) -> bool:
        return self._index < len(self._states) - 1

    def _normalize(self, changes: dict) -> dict:
        out = dict(changes)
        if "rotation" in out:
            out["rotation"] = int(out["rotation"]) % 360
        if "scale_x" in out:
            out["scale_x"] = -1 if out["scale_x"] < 0 else 1
        if "straighten_angle" in out:
            out["straighten_angle"] = self._settings.clamp_straighten(out["straighten_angle"])
        if "edit_zoom" in out:
            out["edit_zoom"] = self._settings.clamp_zoom(out["edit_zoom"])
        if "filter" in out:
            f = out["filter"]
            out["filter"] = replace(f, intensity=max(0, min(100, int(f.intensity))))
        return out

    def push(self, action: ActionKind, **changes) -> EditState:
        changes = self._normalize(changes)
        # Anything after the pointer is discarded on every commit
        del self._states[self._index + 1:]
        last = self._states[-1]

        if action.continuous and last.action is action:
            self._states[-1] = last.merged(action, **changes)
            logger.debug("coalesced %s into entry %d", action.key, self._index)
        else:
            self._states.append(last.merged(action, **changes))
            self._index = len(self._states) - 1
            logger.debug("pushed %s as entry %d", action.key, self._index)
        return self.current

    def rebase_initial(self, **changes) -> EditState:
        changes = self._normalize(changes)
        self._states[0] = replace(self._states[0], **changes)
        return self._states[0]

    def undo(self) -> bool:
        if not self.can_undo():
            return False
        self._index -= 1
        return True

    def redo(self) -> bool:
        if not self.can_redo():
            return False
        self._index += 1
        return True

    def reset(self) -> EditState:
        base = identity_state()
        return self.push(
            ActionKind.RESET,
            rotation=base.rotation,
            scale_x=base.scale_x,
            straighten_angle=base.straighten_angle,
            edit_zoom=base.edit_zoom,
            edit_pan=base.edit_pan,
            crop_box=base.crop_box,
            filter=base.filter,
        )

    def jump_to(self, index: int) -> EditState:
        index = int(index)
        if index < 0 or index >= len(self._states):
            raise IndexError(f"history index {index} out of range 0..{len(self._states) - 1}")
        self._index = index
        return self.current

    def entries(self) -> List[HistoryEntry]:
        return [
            HistoryEntry(
                index=i,
                label=st.action.label,
                is_current=(i == self._index),
                is_future=(i > self._index),
            )
            for i, st in enumerate(self._states)
        ]
