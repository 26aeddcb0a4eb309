"""
Use-Def Chain Infrastructure for the Program Graph

Provides efficient queries for:
1. All uses of a value (def -> uses)
2. The users of a value as instructions
3. Incremental updates whenever an operand changes or an instruction
   enters or leaves the program

Constants are not tracked: only values carrying a program id (arguments,
instructions, functions) have use lists.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class UseLocation:
    """Where a value is used."""
    user: Any                 # The Instruction holding the operand
    operand_index: int        # Index in user.operands
    use_kind: str             # "operand", "callee", "incoming"

    def __eq__(self, other):
        if not isinstance(other, UseLocation):
            return False
        return (id(self.user) == id(other.user) and
                self.operand_index == other.operand_index)

    def __hash__(self):
        return hash((id(self.user), self.operand_index))


def _is_tracked(value: Any) -> bool:
    return getattr(value, "id", -1) >= 0


def _use_kind(user: Any, index: int) -> str:
    opcode = user.opcode.value
    if opcode == "call" and index == 0:
        return "callee"
    if opcode == "phi":
        return "incoming"
    return "operand"


@dataclass
class UseDefContext:
    """
    Reverse index from value id to the places that use it.

    Unlike a lazily rebuilt analysis, this index is updated in the same step
    as every mutation, so it is exact at all times; the Program routes all
    operand changes through it.
    """
    _uses: dict[int, list[UseLocation]] = field(default_factory=dict, repr=False)

    # ==================== Query API ====================

    def get_uses(self, value: Any) -> list[UseLocation]:
        """Get list of UseLocation for a value."""
        if not _is_tracked(value):
            return []
        return self._uses.get(value.id, [])

    def has_uses(self, value: Any) -> bool:
        """Check if a value has any uses."""
        return len(self.get_uses(value)) > 0

    def use_count(self, value: Any) -> int:
        """Get number of uses of a value."""
        return len(self.get_uses(value))

    def users(self, value: Any) -> list:
        """Distinct user instructions, in first-use order."""
        seen: set[int] = set()
        result = []
        for use in self.get_uses(value):
            if id(use.user) not in seen:
                seen.add(id(use.user))
                result.append(use.user)
        return result

    # ==================== Update API ====================

    def add_use(self, value: Any, use_loc: UseLocation) -> None:
        """Incrementally add a use."""
        if not _is_tracked(value):
            return
        self._uses.setdefault(value.id, []).append(use_loc)

    def remove_use(self, value: Any, use_loc: UseLocation) -> None:
        """Incrementally remove a use."""
        if not _is_tracked(value):
            return
        uses = self._uses.get(value.id, [])
        for i, u in enumerate(uses):
            if u == use_loc:
                uses.pop(i)
                break
        if not uses:
            self._uses.pop(value.id, None)

    def track(self, inst: Any) -> None:
        """Record the uses made by every operand of a newly placed instruction."""
        for idx, operand in enumerate(inst.operands):
            self.add_use(operand, UseLocation(inst, idx, _use_kind(inst, idx)))

    def untrack(self, inst: Any) -> None:
        """Forget the uses made by an instruction that is leaving the program."""
        for idx, operand in enumerate(inst.operands):
            self.remove_use(operand, UseLocation(inst, idx, _use_kind(inst, idx)))

    def track_operand(self, inst: Any, index: int) -> None:
        """Record the use made by a single operand appended to a placed instruction."""
        if inst.parent is not None:
            self.add_use(inst.operands[index], UseLocation(inst, index, _use_kind(inst, index)))

    def set_operand(self, inst: Any, index: int, value: Any) -> None:
        """Replace one operand, moving the use from the old value to the new one."""
        if index < 0 or index >= len(inst.operands):
            raise IndexError(f"{inst!r} has no operand {index}")
        use_loc = UseLocation(inst, index, _use_kind(inst, index))
        old = inst.operands[index]
        placed = inst.parent is not None
        if placed:
            self.remove_use(old, use_loc)
        inst.operands[index] = value
        if placed:
            self.add_use(value, use_loc)

    def replace_all_uses(self, old: Any, new: Any) -> int:
        """
        Replace all uses of `old` with `new`.

        Returns the number of uses replaced. Both the IR operands and the
        index are updated.
        """
        if old is new:
            return 0
        uses = list(self.get_uses(old))
        for use_loc in uses:
            self.set_operand(use_loc.user, use_loc.operand_index, new)
        return len(uses)

    def items(self):
        """Iterate (value id, uses) pairs of every tracked value with uses."""
        return self._uses.items()
