"""
Memset Loop Expansion

Replaces a memory-fill call with an explicit byte-by-byte loop:

    orig:
      %0 = icmp eq len, 0
      br %0, label %split, label %loadstoreloop
    loadstoreloop:
      %index = phi [ 0, %orig ], [ %next, %loadstoreloop ]
      %ptr = getelementptr dest, %index
      store val, %ptr
      %next = add %index, 1
      %cont = icmp ult %next, len
      br %cont, label %loadstoreloop, label %split
    split:
      ...rest of the original block
"""

from typing import Optional

from ..errors import precondition
from ..ir import Constant, Instruction, Program
from ..ir_builder import IRBuilder
from ..types import IntType, PointerType, store_size


def common_alignment(align: Optional[int], offset: int) -> Optional[int]:
    """Alignment still guaranteed at `offset` bytes past an `align`-aligned address."""
    if align is None:
        return None
    if offset == 0:
        return align
    return min(align, offset & -offset)


def memset_is_volatile(memset: Instruction) -> bool:
    flag = memset.args[3]
    if not isinstance(flag, Constant) or flag.is_undef:
        raise precondition(f"Volatility of {memset!r} must be a constant", memset)
    return bool(flag.value)


def expand_memset_as_loop(program: Program, memset: Instruction) -> None:
    """Lower `memset` in place to a fill loop and erase it."""
    dest, val, length, _ = memset.args
    if not isinstance(dest.type, PointerType) or not isinstance(length.type, IntType):
        raise precondition(f"Unexpected operand types on {memset!r}", memset)

    volatile = memset_is_volatile(memset)
    orig_block = memset.parent
    fn = orig_block.parent
    split = program.split_block(orig_block, orig_block.instructions.index(memset) + 1, "split")
    loop = program.add_block(fn, "loadstoreloop", after=orig_block)

    b = IRBuilder(program, orig_block)
    zero = Constant.int(length.type, 0)
    b.cond_br(b.eq(length, zero), split, loop)

    b.position_at_end(loop)
    index = b.phi(length.type, [(zero, orig_block)], "index")
    elem_ptr = b.gep(dest, index, "ptr")
    stride = store_size(dest.type.pointee)
    b.store(val, elem_ptr, align=common_alignment(memset.align, stride), volatile=volatile)
    next_index = b.add(index, Constant.int(length.type, 1), "next")
    b.add_incoming(index, next_index, loop)
    b.cond_br(b.ult(next_index, length, "cont"), loop, split)

    program.erase_instruction(memset)
