"""
IR Printing Utilities

Renders programs in an LLVM-like textual form for dumps, diffs and the
debug copy of a regularized program.
"""

from pathlib import Path
from typing import Union

from .ir import Argument, Constant, Function, Instruction, Opcode, Program
from .types import VoidType


def _value_ref(value) -> str:
    """Short reference to a value as it appears in an operand list."""
    if isinstance(value, Constant):
        return repr(value)
    if isinstance(value, Function):
        return f"{value.type!r} @{value.name}"
    if isinstance(value, Argument):
        return f"{value.type!r} %{value.name or value.index}"
    if isinstance(value, Instruction):
        return f"{value.type!r} %{value.name or value.id}"
    return str(value)


def format_instruction(inst: Instruction) -> str:
    """Format a single instruction on one line."""
    ops = inst.operands
    op = inst.opcode
    flags = "".join(f" {f}" for f in sorted(inst.flags) if f not in ("tail", "volatile"))

    if op == Opcode.CALL:
        prefix = "tail " if "tail" in inst.flags else ""
        args = ", ".join(_value_ref(a) for a in inst.args)
        callee = inst.callee
        target = f"@{callee.name}" if isinstance(callee, Function) else _value_ref(callee)
        body = f"{prefix}call {inst.type!r} {target}({args})"
        if inst.attrs:
            body += " #" + ",".join(sorted(inst.attrs))
    elif op == Opcode.ICMP:
        body = f"icmp {inst.predicate} {_value_ref(ops[0])}, {_value_ref(ops[1])}"
    elif op == Opcode.PHI:
        incoming = ", ".join(f"[ {_value_ref(v)}, %{b.name} ]" for v, b in zip(ops, inst.targets))
        body = f"phi {inst.type!r} {incoming}"
    elif op == Opcode.BR:
        body = f"br label %{inst.targets[0].name}"
    elif op == Opcode.COND_BR:
        body = (f"br {_value_ref(ops[0])}, label %{inst.targets[0].name}, "
                f"label %{inst.targets[1].name}")
    elif op == Opcode.CMPXCHG:
        success, failure = inst.orderings
        body = (f"cmpxchg {', '.join(_value_ref(o) for o in ops)} "
                f"{success.value} {failure.value}")
    elif op in (Opcode.EXTRACT_VALUE, Opcode.INSERT_VALUE):
        idx = ", ".join(str(i) for i in inst.indices)
        body = f"{op.value} {', '.join(_value_ref(o) for o in ops)}, {idx}"
    elif op == Opcode.BITCAST:
        body = f"bitcast {_value_ref(ops[0])} to {inst.type!r}"
    else:
        volatile = " volatile" if "volatile" in inst.flags else ""
        body = f"{op.value}{volatile}{flags} {', '.join(_value_ref(o) for o in ops)}"

    if inst.align is not None:
        body += f", align {inst.align}"
    for kind in sorted(inst.metadata):
        body += f", !{kind} {inst.metadata[kind]!r}"

    if isinstance(inst.type, VoidType) or op == Opcode.STORE:
        return body
    return f"%{inst.name or inst.id} = {body}"


def format_function(fn: Function) -> str:
    params = []
    for arg in fn.args:
        attrs = "".join(
            f" {k}" if v is True else f" {k}({v})" for k, v in sorted(arg.attrs.items()))
        params.append(f"{arg.type!r}{attrs} %{arg.name or arg.index}")
    header = f"{fn.ftype.ret!r} @{fn.name}({', '.join(params)})"
    if fn.attrs:
        header += " #" + ",".join(sorted(fn.attrs))
    if fn.is_declaration:
        return f"declare {header}"

    lines = [f"define {header} {{"]
    for i, block in enumerate(fn.blocks):
        if i:
            lines.append("")
        lines.append(f"{block.name}:")
        for inst in block.instructions:
            lines.append(f"  {format_instruction(inst)}")
    lines.append("}")
    return "\n".join(lines)


def format_program(program: Program) -> str:
    """Format a whole program: declarations first, then definitions."""
    decls = [format_function(fn) for fn in program.functions.values() if fn.is_declaration]
    defs = [format_function(fn) for fn in program.functions.values() if not fn.is_declaration]
    parts = [f"; ModuleID = '{program.name}'"]
    if decls:
        parts.append("\n".join(decls))
    parts.extend(defs)
    return "\n\n".join(parts) + "\n"


def print_program(program: Program):
    """Pretty-print a program."""
    print(f"=== Program: {program.name} ({len(program.functions)} functions) ===")
    print(format_program(program))


def save_program(program: Program, path: Union[str, Path]) -> Path:
    """Write the textual form of `program` to `path`."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(format_program(program))
    return path
