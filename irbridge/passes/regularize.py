"""
Regularization Driver

Removes everything the target-IR encoder cannot represent:

1. Declarations nothing references are erased.
2. Function-pointer builtin calls are redirected (this can expose new dead
   declarations, so it runs before the sweep).
3. Every instruction of every defined function is visited once, in block
   order: call markers are cleared, unsupported intrinsics are redirected to
   helpers, exact flags and unsupported metadata are stripped, and cmpxchg
   is rewritten into a builtin call.
4. Instructions made dead by a rewrite are erased after their function's
   sweep, each checked to have no users left.
5. Intrinsic declarations left without calls are erased.
"""

import os
import tempfile
from typing import Any, Optional

from ..errors import dead_reference
from ..ir import Function, Instruction, Opcode, Program
from ..pass_manager import ModulePass, PassConfig
from ..printing import save_program
from ..verify import verify_regularized
from .atomics import CmpXchgRewriter
from .func_ptr import FunctionPointerLowering
from .helpers import HelperFunctionCache
from .intrinsics import IntrinsicLowering
from .sanitize import clear_exact, clear_nounwind, clear_tail_call, strip_metadata

# File name of the debug copy written when save_regularized is set
REGULARIZED_FILE_NAME = "regularized.ll"

DEFAULT_OPTIONS = {
    "save_regularized": False,
    "save_path": None,
    "verify": True,
}


def erase_unused_declarations(program: Program, intrinsics_only: bool = False) -> int:
    erased = 0
    for fn in list(program.functions.values()):
        if not fn.is_declaration or program.has_uses(fn):
            continue
        if intrinsics_only and not fn.is_intrinsic:
            continue
        program.erase_function(fn)
        erased += 1
    return erased


class Regularizer:
    """One regularization run over a program, mutating it in place."""

    def __init__(self, program: Program, options: Optional[dict[str, Any]] = None):
        self.program = program
        self.options = {**DEFAULT_OPTIONS, **(options or {})}
        self.cache = HelperFunctionCache(program)
        self.intrinsics = IntrinsicLowering(program, self.cache)
        self.atomics = CmpXchgRewriter(program)
        self.func_ptr = FunctionPointerLowering(program)

        self.tail_calls_cleared = 0
        self.nounwind_cleared = 0
        self.exact_flags_cleared = 0
        self.metadata_stripped = 0
        self.instructions_erased = 0
        self.declarations_erased = 0
        self.saved_path: Optional[str] = None

    def run(self) -> Program:
        program = self.program
        self.declarations_erased += erase_unused_declarations(program)
        self.func_ptr.run()
        self.declarations_erased += self.func_ptr.declarations_erased

        for fn in list(program.functions.values()):
            if fn.parent is not program:
                continue
            if fn.is_declaration:
                if not program.has_uses(fn):
                    program.erase_function(fn)
                    self.declarations_erased += 1
                continue
            self._regularize_function(fn)

        self.declarations_erased += erase_unused_declarations(program, intrinsics_only=True)

        if self.options["save_regularized"]:
            self.saved_path = str(self._save())
        if self.options["verify"]:
            verify_regularized(program)
        return program

    def _regularize_function(self, fn: Function) -> None:
        to_erase: list[Instruction] = []
        for block in list(fn.blocks):
            for inst in list(block.instructions):
                self._regularize_instruction(inst, to_erase)

        for inst in to_erase:
            if self.program.has_uses(inst):
                raise dead_reference(f"{inst!r} still has users after rewriting", inst)
            self.program.erase_instruction(inst)
            self.instructions_erased += 1

    def _regularize_instruction(self, inst: Instruction, to_erase: list[Instruction]) -> None:
        if inst.opcode == Opcode.CALL:
            if clear_tail_call(inst):
                self.tail_calls_cleared += 1
            callee = inst.called_function
            if callee is not None and callee.is_intrinsic:
                if clear_nounwind(inst):
                    self.nounwind_cleared += 1
                self.intrinsics.lower(inst)

        if clear_exact(inst):
            self.exact_flags_cleared += 1
        self.metadata_stripped += strip_metadata(inst)

        if inst.opcode == Opcode.CMPXCHG:
            to_erase.extend(self.atomics.rewrite(inst))

    def _save(self):
        path = self.options["save_path"]
        if path is None:
            path = os.path.join(tempfile.gettempdir(), REGULARIZED_FILE_NAME)
        return save_program(self.program, path)

    def stats(self) -> dict[str, int]:
        return {
            "helpers_created": self.cache.created,
            "helpers_reused": self.cache.reused,
            "helper_bodies_built": self.intrinsics.bodies_built,
            "calls_redirected": self.intrinsics.calls_redirected + self.func_ptr.calls_redirected,
            "memsets_skipped": self.intrinsics.memsets_skipped,
            "cmpxchg_rewritten": self.atomics.rewritten,
            "tail_calls_cleared": self.tail_calls_cleared,
            "nounwind_cleared": self.nounwind_cleared,
            "exact_flags_cleared": self.exact_flags_cleared,
            "metadata_stripped": self.metadata_stripped,
            "casts_erased": self.func_ptr.casts_erased,
            "instructions_erased": self.instructions_erased,
            "declarations_erased": self.declarations_erased,
        }


def regularize(program: Program, save_regularized: bool = False,
               save_path: Optional[str] = None, verify: bool = True) -> Program:
    """Regularize `program` in place and return it."""
    options = {"save_regularized": save_regularized, "save_path": save_path, "verify": verify}
    return Regularizer(program, options).run()


class RegularizePass(ModulePass):
    """
    Regularization as a pass for the PassManager.

    Options (PassConfig.options):
    - save_regularized: write the result to a debug file (default False)
    - save_path: where to write it (default: regularized.ll in the temp dir)
    - verify: check the output contract afterwards (default True)
    """

    @property
    def name(self) -> str:
        return "regularize"

    def run(self, program: Program, config: PassConfig) -> Program:
        self._init_metrics()

        if not config.enabled:
            return program

        regularizer = Regularizer(program, config.options)
        program = regularizer.run()

        if self._metrics:
            self._metrics.custom = regularizer.stats()
        for name in sorted(self.helpers_in_use(program, regularizer)):
            self._add_metric_message(f"Helper @{name}")
        for msg in regularizer.func_ptr.messages:
            self._add_metric_message(f"Rewrote builtin {msg}")
        if regularizer.saved_path is not None:
            self._add_metric_message(f"Saved regularized program to {regularizer.saved_path}")

        return program

    @staticmethod
    def helpers_in_use(program: Program, regularizer: Regularizer) -> list[str]:
        return [name for name in program.functions if name in regularizer.cache]
