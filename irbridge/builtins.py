"""
Target-IR Builtin Names

Builtins are declared functions whose names encode a target-IR opcode:
`__spirv_<Op>`, optionally wrapped in Itanium mangling
(`_Z21__spirv_EnqueueKernel...`). This module maps names to opcodes and
opcodes back to their decorated, unmangled names.
"""

import re
from typing import Optional

from .types import Type, mangle_type

BUILTIN_PREFIX = "__spirv_"

# Namespace token prepended to helpers synthesized for lowered intrinsics
HELPER_NAMESPACE = "spirv."

# Target-IR opcodes reachable through builtin calls
BUILTIN_OPCODES = frozenset({
    # Device-side enqueue (take an invoke function pointer)
    "EnqueueKernel",
    "GetKernelNDrangeSubGroupCount",
    "GetKernelNDrangeMaxSubGroupSize",
    "GetKernelWorkGroupSize",
    "GetKernelPreferredWorkGroupSizeMultiple",
    "GetKernelLocalSizeForSubgroupCount",
    "GetKernelMaxNumSubgroups",
    # Atomics
    "AtomicLoad",
    "AtomicStore",
    "AtomicExchange",
    "AtomicCompareExchange",
    "AtomicCompareExchangeWeak",
    "AtomicIIncrement",
    "AtomicIDecrement",
    "AtomicIAdd",
    "AtomicISub",
    "AtomicSMin",
    "AtomicUMin",
    "AtomicSMax",
    "AtomicUMax",
    "AtomicAnd",
    "AtomicOr",
    "AtomicXor",
    # Barriers
    "ControlBarrier",
    "MemoryBarrier",
    # Pipes and events
    "ReadPipe",
    "WritePipe",
    "EnqueueMarker",
    "RetainEvent",
    "ReleaseEvent",
    "CreateUserEvent",
    "SetUserEventStatus",
})

_MANGLED_RE = re.compile(r"^_Z(\d+)")


def demangle_builtin_name(name: str) -> str:
    """Strip Itanium mangling from `name`, keeping only the source identifier."""
    match = _MANGLED_RE.match(name)
    if match is None:
        return name
    length = int(match.group(1))
    start = match.end()
    return name[start:start + length]


def builtin_opcode(name: str) -> Optional[str]:
    """Target-IR opcode named by a builtin function, or None for anything else."""
    ident = demangle_builtin_name(name)
    if not ident.startswith(BUILTIN_PREFIX):
        return None
    op = ident[len(BUILTIN_PREFIX):].split(".", 1)[0]
    return op if op in BUILTIN_OPCODES else None


def decorate_builtin(op: str) -> str:
    """Decorated name under which the encoder recognizes opcode `op`."""
    if op not in BUILTIN_OPCODES:
        raise ValueError(f"Unknown builtin opcode: {op}")
    return BUILTIN_PREFIX + op


def typed_builtin_name(op: str, *types: Type) -> str:
    """Decorated name specialized to parameter types: __spirv_AtomicCompareExchange.p3i32."""
    return f"{decorate_builtin(op)}." + "".join(mangle_type(ty) for ty in types)


def helper_name(intrinsic_name: str) -> str:
    """Name of the helper that implements a lowered intrinsic.

    Separators become underscores under the helper namespace, so a reverse
    translator can recognize the helper and fold it back:
    llvm.fshl.i32 -> spirv.llvm_fshl_i32.
    """
    return HELPER_NAMESPACE + intrinsic_name.replace(".", "_")
