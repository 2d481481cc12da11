"""
Open-loop scripted inputs for synthetic parkour runs.

A script is a list of phases, each holding a set of keys for a number of
ticks; the script loops. It never looks at the agent, so the same tick index
always yields the same keys and synthetic runs are reproducible.
"""

from __future__ import annotations

import bisect
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from itertools import accumulate

from src.capture.action_space import ACTION_LABELS, ActionSpace, canonical_action_space

# Flag vector positions, same order as ACTION_LABELS.
IDX_FORWARD, IDX_LEFT, IDX_RIGHT, IDX_BACK, IDX_JUMP, IDX_SNEAK, IDX_SPRINT = range(len(ACTION_LABELS))

_OPPOSED = (("FORWARD", "BACK"), ("LEFT", "RIGHT"))


@dataclass(frozen=True)
class Phase:
    """
    Hold `keys` (action labels) for `ticks` ticks.
    """

    ticks: int
    keys: frozenset[str] = frozenset()
    name: str = ""

    def __post_init__(self) -> None:
        if self.ticks <= 0:
            raise ValueError(f"phase {self.name!r}: ticks must be > 0, got {self.ticks}")
        keys = frozenset(k.upper() for k in self.keys)
        unknown = keys - set(ACTION_LABELS)
        if unknown:
            raise ValueError(f"phase {self.name!r}: unknown keys {sorted(unknown)}")
        for a, b in _OPPOSED:
            if a in keys and b in keys:
                raise ValueError(f"phase {self.name!r}: {a} and {b} cancel out")
        object.__setattr__(self, "keys", keys)


def phase(ticks: int, *keys: str, name: str = "") -> Phase:
    return Phase(ticks=ticks, keys=frozenset(keys), name=name)


# Stand long enough to fill a K=4 history, run up, sprint-jump the first gap
# of flat_course, then land and settle.
DEFAULT_PHASES: list[Phase] = [
    phase(5, name="idle"),
    phase(10, "FORWARD", "SPRINT", name="run-up"),
    phase(1, "FORWARD", "SPRINT", "JUMP", name="jump"),
    phase(11, "FORWARD", "SPRINT", name="air"),
    phase(3, "FORWARD", name="land"),
    phase(4, "SNEAK", name="settle"),
]


class ScriptedController:
    def __init__(self, phases: Iterable[Phase] | None = None, action_space: ActionSpace | None = None) -> None:
        self.action_space = action_space or canonical_action_space()
        if list(self.action_space.labels) != list(ACTION_LABELS):
            raise ValueError("scripted phases are written against the canonical action order")
        self.phases: Sequence[Phase] = tuple(phases) if phases is not None else tuple(DEFAULT_PHASES)
        if not self.phases:
            raise ValueError("at least one phase is required")
        self._ends = list(accumulate(p.ticks for p in self.phases))

    @property
    def cycle_length_ticks(self) -> int:
        return self._ends[-1]

    def phase_at(self, tick: int) -> Phase:
        if tick < 0:
            raise ValueError(f"tick must be >= 0, got {tick}")
        return self.phases[bisect.bisect_right(self._ends, tick % self.cycle_length_ticks)]

    def flags_for_tick(self, tick: int) -> list[bool]:
        keys = self.phase_at(tick).keys
        return [lab in keys for lab in ACTION_LABELS]

    def action_mask_for_tick(self, tick: int) -> int:
        return self.action_space.encode(self.flags_for_tick(tick))


def _self_test() -> None:
    ctl = ScriptedController()
    assert ctl.phase_at(15).name == "jump"
    assert ctl.phase_at(16).name == "air"
    assert ctl.phase_at(15 + ctl.cycle_length_ticks).name == "jump"
    assert ctl.action_mask_for_tick(15) == 0b1010001
    print("controller.py self-test: OK")


if __name__ == "__main__":
    _self_test()
