"""
Attribute / Metadata Sanitizer

Removes optimizer annotations that have no target-IR counterpart.
"""

from ..ir import Instruction, Opcode, POSSIBLY_EXACT_OPCODES

# Metadata kinds the target IR cannot carry
UNSUPPORTED_METADATA = ("fpmath", "tbaa", "range")


def clear_tail_call(call: Instruction) -> bool:
    """The target IR has no tail calls."""
    if call.opcode == Opcode.CALL and "tail" in call.flags:
        call.flags.discard("tail")
        return True
    return False


def clear_nounwind(call: Instruction) -> bool:
    if "nounwind" in call.attrs:
        call.attrs.discard("nounwind")
        return True
    return False


def clear_exact(inst: Instruction) -> bool:
    """Drop the exact flag; target division and shifts always behave as the non-exact form."""
    if inst.opcode in POSSIBLY_EXACT_OPCODES and "exact" in inst.flags:
        inst.flags.discard("exact")
        return True
    return False


def strip_metadata(inst: Instruction) -> int:
    """Remove unsupported metadata kinds, leaving every other kind untouched."""
    removed = 0
    for kind in UNSUPPORTED_METADATA:
        if kind in inst.metadata:
            del inst.metadata[kind]
            removed += 1
    return removed
