"""
Atomic Compare-Exchange Rewriting

`cmpxchg` yields { original, succeeded }; the target builtin returns only the
original value and takes an explicit memory scope plus two memory-semantics
operands. The success flag is recomputed as `original == comparator`, and
every consumer of the pair is migrated to the value it actually needs.
"""

from ..builtins import decorate_builtin, typed_builtin_name
from ..errors import precondition
from ..ir import AtomicOrdering, Constant, Function, Instruction, Opcode, Program
from ..ir_builder import IRBuilder
from ..types import I32, FunctionType
from .helpers import get_or_insert_overload

# Target memory scope used for cmpxchg, which carries no scope of its own
SCOPE_DEVICE = 1

# Source ordering -> C ABI order -> target memory semantics bits
MEMORY_SEMANTICS = {
    AtomicOrdering.NOT_ATOMIC: 0x0,   # relaxed
    AtomicOrdering.UNORDERED: 0x0,    # relaxed
    AtomicOrdering.MONOTONIC: 0x0,    # relaxed
    AtomicOrdering.ACQUIRE: 0x2,
    AtomicOrdering.RELEASE: 0x4,
    AtomicOrdering.ACQ_REL: 0x8,
    AtomicOrdering.SEQ_CST: 0x10,
}

COMPARE_EXCHANGE_OP = "AtomicCompareExchange"


def memory_semantics(ordering: AtomicOrdering) -> int:
    return MEMORY_SEMANTICS[ordering]


class CmpXchgRewriter:
    """Rewrites cmpxchg instructions into builtin calls plus explicit comparisons."""

    def __init__(self, program: Program):
        self.program = program
        self.rewritten = 0

    def _builtin(self, cmpxchg: Instruction) -> Function:
        ptr, comparator, _ = cmpxchg.operands
        value_ty = comparator.type
        ftype = FunctionType(value_ty, (ptr.type, I32, I32, I32, value_ty, value_ty))
        # Same value type on another address space needs its own declaration.
        fn, _ = get_or_insert_overload(
            self.program, decorate_builtin(COMPARE_EXCHANGE_OP),
            typed_builtin_name(COMPARE_EXCHANGE_OP, ptr.type), ftype)
        return fn

    def rewrite(self, cmpxchg: Instruction) -> list[Instruction]:
        """Rewrite one cmpxchg; returns the instructions left dead, in erase order."""
        if cmpxchg.opcode != Opcode.CMPXCHG:
            raise precondition(f"{cmpxchg!r} is not a cmpxchg", cmpxchg)

        ptr, comparator, new_value = cmpxchg.operands
        success, failure = cmpxchg.orderings
        args = [
            ptr,
            Constant.int(I32, SCOPE_DEVICE),
            Constant.int(I32, memory_semantics(success)),
            Constant.int(I32, memory_semantics(failure)),
            new_value,
            comparator,
        ]
        b = IRBuilder(self.program).position_before(cmpxchg)
        res = b.call(self._builtin(cmpxchg), args, "cmpxchg.res")

        to_erase: list[Instruction] = []
        for user in self.program.users(cmpxchg):
            if user.opcode == Opcode.EXTRACT_VALUE:
                index = user.indices[0]
                if index == 0:
                    self.program.replace_all_uses(user, res)
                elif index == 1:
                    b.position_before(user)
                    cmp = b.eq(res, comparator, "cmpxchg.success")
                    self.program.replace_all_uses(user, cmp)
                else:
                    raise precondition(f"Unexpected cmpxchg pattern: {user!r}", user)
                to_erase.append(user)
            elif user.opcode == Opcode.STORE and user.operands[0] is cmpxchg:
                # The whole pair is stored: rebuild it right before the store.
                b.position_before(user)
                cmp = b.eq(res, comparator, "cmpxchg.success")
                agg = b.insert_value(Constant.undef(cmpxchg.type), res, 0, "agg0")
                agg_struct = b.insert_value(agg, cmp, 1, "agg1")
                self.program.set_operand(user, 0, agg_struct)
            else:
                raise precondition(f"Unexpected cmpxchg pattern: {user!r}", user)

        to_erase.append(cmpxchg)
        self.rewritten += 1
        return to_erase
