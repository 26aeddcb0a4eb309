"""
Helper-Function Cache

Synthesized helpers are identified by name alone. The cache hands out the one
function carrying a given name, creating an empty declaration the first time
it is asked for; lowering routines fill in the body only while it is empty.
"""

from typing import Optional

from ..builtins import helper_name
from ..errors import precondition
from ..ir import Function, Instruction, Opcode, Program
from ..types import FunctionType


def intrinsic_helper_name(call: Instruction) -> str:
    """Helper name for the intrinsic targeted by `call` (llvm.fshl.i32 -> spirv.llvm_fshl_i32)."""
    if call.opcode != Opcode.CALL:
        raise precondition(f"{call!r} is not a call", call)
    fn = call.called_function
    if fn is None:
        raise precondition(f"Missing called function on {call!r}", call)
    return helper_name(fn.name)


def get_or_insert_overload(program: Program, name: str, overload_name: str,
                           ftype: FunctionType) -> tuple[Function, bool]:
    """Declaration of type `ftype` under `name`, or under `overload_name` once
    `name` is taken by another signature. Returns (function, created)."""
    for candidate in (name, overload_name):
        fn = program.get_function(candidate)
        if fn is None:
            return program.add_function(candidate, ftype), True
        if fn.ftype == ftype:
            return fn, False
    raise precondition(
        f"@{overload_name} exists with signature {fn.ftype!r}, requested {ftype!r}", fn)


class HelperFunctionCache:
    """Create-or-reuse lookup of helper functions for one program."""

    def __init__(self, program: Program):
        self.program = program
        self._helpers: dict[str, Function] = {}
        self.created = 0
        self.reused = 0

    def lookup(self, name: str) -> Optional[Function]:
        fn = self._helpers.get(name)
        if fn is not None and fn.parent is self.program:
            return fn
        return self.program.get_function(name)

    def get_or_create(self, name: str, ftype: FunctionType) -> Function:
        """Return the function called `name`, creating an empty one if absent.

        A function that was linked into the program before this run counts
        as existing. Asking for an existing name with another signature is a
        precondition violation.
        """
        fn = self.lookup(name)
        if fn is None:
            fn = self.program.add_function(name, ftype)
            self.created += 1
        else:
            if fn.ftype != ftype:
                raise precondition(
                    f"Helper @{name} exists with signature {fn.ftype!r}, requested {ftype!r}", fn)
            self.reused += 1
        self._helpers[name] = fn
        return fn

    def __len__(self):
        return len(self._helpers)

    def __contains__(self, name: str) -> bool:
        return name in self._helpers
