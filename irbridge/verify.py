"""
Regularization Verifier

Checks that a program is ready for the target-IR encoder: no unsupported
intrinsic calls, no cmpxchg, no unsupported metadata or exact flags, no cast
function pointers passed to builtins, no call whose arguments disagree with
the callee signature, and a use-def index that matches the operands exactly.
"""

from .builtins import builtin_opcode
from .errors import ErrorKind, RegularizationError
from .ir import Constant, Instruction, Opcode, POSSIBLY_EXACT_OPCODES, Program
from .types import is_function_pointer

UNSUPPORTED_INTRINSIC_PREFIXES = ("llvm.fshl.", "llvm.umul.with.overflow.")
MEMSET_PREFIX = "llvm.memset."
UNSUPPORTED_METADATA = ("fpmath", "tbaa", "range")


def _check_instruction(inst: Instruction, problems: list[str]) -> None:
    where = f"{inst!r} in @{inst.function.name}"

    if inst.opcode == Opcode.CALL:
        fn = inst.called_function
        if fn is not None and fn.name.startswith(UNSUPPORTED_INTRINSIC_PREFIXES):
            problems.append(f"call to @{fn.name} ({where})")
        elif fn is not None and fn.name.startswith(MEMSET_PREFIX):
            _, val, length, _ = inst.args
            if not (isinstance(val, Constant) and isinstance(length, Constant)):
                problems.append(f"non-constant memset ({where})")
        if fn is not None and (tuple(a.type for a in inst.args) != fn.ftype.params
                               or inst.type != fn.ftype.ret):
            problems.append(f"call does not match the signature of @{fn.name} ({where})")
        if fn is not None and builtin_opcode(fn.name) is not None:
            for arg in inst.args:
                if (isinstance(arg, Instruction) and arg.opcode == Opcode.BITCAST
                        and is_function_pointer(arg.type)):
                    problems.append(f"cast function pointer passed to @{fn.name} ({where})")

    if inst.opcode == Opcode.CMPXCHG:
        problems.append(f"cmpxchg ({where})")
    if inst.opcode in POSSIBLY_EXACT_OPCODES and "exact" in inst.flags:
        problems.append(f"exact flag ({where})")
    for kind in UNSUPPORTED_METADATA:
        if kind in inst.metadata:
            problems.append(f"!{kind} metadata ({where})")


def _check_use_def(program: Program, problems: list[str]) -> None:
    use_def = program.use_def

    # Every operand use is recorded, and refers to something still in the program.
    for inst in program.all_instructions():
        for idx, operand in enumerate(inst.operands):
            if isinstance(operand, Constant):
                continue
            if operand.id < 0:
                problems.append(f"untracked operand {idx} of {inst!r}")
                continue
            if not any(u.user is inst and u.operand_index == idx
                       for u in use_def.get_uses(operand)):
                problems.append(f"unrecorded use of {operand!r} by {inst!r}")
            detached = (operand.parent is None if not isinstance(operand, Instruction)
                        else operand.parent is None or operand.function.parent is not program)
            if detached:
                problems.append(f"{inst!r} references erased value {operand!r}")

    # Every recorded use still matches an operand of a placed instruction.
    for value_id, uses in use_def.items():
        for use in uses:
            user = use.user
            if user.parent is None:
                problems.append(f"stale use of value {value_id} by erased {user!r}")
            elif (use.operand_index >= len(user.operands)
                  or getattr(user.operands[use.operand_index], "id", -1) != value_id):
                problems.append(f"stale use of value {value_id} by {user!r}")


def find_violations(program: Program) -> list[str]:
    """Everything that keeps `program` from being handed to the encoder."""
    problems: list[str] = []
    for inst in program.all_instructions():
        _check_instruction(inst, problems)
    _check_use_def(program, problems)
    return problems


def verify_regularized(program: Program) -> None:
    problems = find_violations(program)
    if problems:
        summary = "; ".join(problems[:5])
        if len(problems) > 5:
            summary += f"; ... ({len(problems) - 5} more)"
        raise RegularizationError(ErrorKind.VERIFICATION, summary, program)
