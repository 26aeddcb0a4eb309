"""
Reference Interpreter for the Program Graph

Executes programs before and after regularization so the two can be compared.
Memory is a flat little-endian byte array addressed by plain integers; every
store is appended to a write log. Intrinsics and the atomic builtin are
evaluated with their reference semantics, other declarations through
user-supplied handlers.

Integers are Python ints, vectors and aggregates are tuples, undef is None.
"""

from typing import Any, Callable, Optional

from .ir import Argument, Block, Constant, Function, Instruction, Opcode, Program
from .types import (
    IntType, PointerType, StructType, Type, VectorType, scalar_type, store_size,
)

MAX_STEPS = 1_000_000


class InterpreterError(RuntimeError):
    """Execution hit undefined behaviour or something the interpreter cannot run."""
    pass


def _to_signed(value: int, width: int) -> int:
    if value & (1 << (width - 1)):
        return value - (1 << width)
    return value


def _lanewise(ty: Type, fn: Callable, *operands):
    if isinstance(ty, VectorType):
        return tuple(fn(*lanes) for lanes in zip(*operands))
    return fn(*operands)


def funnel_shift_left(a: int, b: int, amount: int, width: int) -> int:
    """High `width` bits of (a:b) rotated left by amount mod width."""
    mask = (1 << width) - 1
    concat = (a << width) | b
    return ((concat << (amount % width)) >> width) & mask


def umul_with_overflow(a: int, b: int, width: int) -> tuple[int, int]:
    product = a * b
    mask = (1 << width) - 1
    return product & mask, int(product > mask)


class Interpreter:
    """Runs functions of one program against a shared memory image."""

    def __init__(self, program: Program, memory_size: int = 4096,
                 externals: Optional[dict[str, Callable[..., Any]]] = None):
        self.program = program
        self.memory = bytearray(memory_size)
        self.externals = dict(externals or {})
        self.writes: list[tuple[int, int]] = []   # (address, size) per store
        self.steps = 0

    # ==================== Memory ====================

    def _check_range(self, addr: int, size: int) -> None:
        if addr < 0 or addr + size > len(self.memory):
            raise InterpreterError(f"Access of {size} bytes at {addr} is out of bounds")

    def read(self, addr: int, ty: Type):
        if isinstance(ty, (IntType, PointerType)):
            size = store_size(ty)
            self._check_range(addr, size)
            return int.from_bytes(self.memory[addr:addr + size], "little")
        if isinstance(ty, VectorType):
            step = store_size(ty.element)
            return tuple(self.read(addr + i * step, ty.element) for i in range(ty.count))
        if isinstance(ty, StructType):
            values = []
            for field_ty in ty.fields:
                values.append(self.read(addr, field_ty))
                addr += store_size(field_ty)
            return tuple(values)
        raise InterpreterError(f"Cannot load a value of type {ty!r}")

    def write(self, addr: int, ty: Type, value) -> None:
        if isinstance(ty, (IntType, PointerType)):
            size = store_size(ty)
            self._check_range(addr, size)
            if value is None:
                value = 0
            mask = ty.mask if isinstance(ty, IntType) else (1 << 64) - 1
            self.memory[addr:addr + size] = (value & mask).to_bytes(size, "little")
        elif isinstance(ty, VectorType):
            step = store_size(ty.element)
            for i, lane in enumerate(value):
                self.write(addr + i * step, ty.element, lane)
        elif isinstance(ty, StructType):
            for field_ty, field_value in zip(ty.fields, value):
                self.write(addr, field_ty, field_value)
                addr += store_size(field_ty)
        else:
            raise InterpreterError(f"Cannot store a value of type {ty!r}")

    def _store(self, addr: int, ty: Type, value) -> None:
        self.write(addr, ty, value)
        self.writes.append((addr, store_size(ty)))

    # ==================== Calls ====================

    def call(self, fn, args: list):
        """Call a function (by object or name) with already evaluated arguments."""
        if isinstance(fn, str):
            name = fn
            fn = self.program.get_function(name)
            if fn is None:
                raise InterpreterError(f"Unknown function @{name}")
        if fn.is_declaration:
            return self._call_declaration(fn, args)
        return self._run(fn, args)

    def _call_declaration(self, fn: Function, args: list):
        name = fn.name
        ret = fn.return_type
        if name.startswith("llvm.memset."):
            dest, val, length, _ = args
            for i in range(length):
                self._store(dest + i, IntType(8), val)
            return None
        if name.startswith("llvm.fshl."):
            width = scalar_type(ret).width
            return _lanewise(ret, lambda a, b, r: funnel_shift_left(a, b, r, width), *args)
        if name.startswith("llvm.umul.with.overflow."):
            value_ty = ret.fields[0]
            width = scalar_type(value_ty).width
            if isinstance(value_ty, VectorType):
                pairs = [umul_with_overflow(a, b, width) for a, b in zip(*args)]
                return tuple(p for p, _ in pairs), tuple(o for _, o in pairs)
            return umul_with_overflow(args[0], args[1], width)
        if name.startswith("__spirv_AtomicCompareExchange"):
            ptr, _scope, _equal_sem, _unequal_sem, new_value, comparator = args
            original = self.read(ptr, ret)
            if original == comparator:
                self._store(ptr, ret, new_value)
            return original
        if name in self.externals:
            return self.externals[name](*args)
        raise InterpreterError(f"No handler for declaration @{name}")

    # ==================== Execution ====================

    def _value(self, value, env: dict[int, Any]):
        if isinstance(value, Constant):
            if value.value is None and isinstance(value.type, StructType):
                return tuple(None for _ in value.type.fields)
            return value.value
        if isinstance(value, Function):
            return value
        if isinstance(value, (Argument, Instruction)):
            if value.id not in env:
                raise InterpreterError(f"{value!r} used before it was defined")
            return env[value.id]
        raise InterpreterError(f"Cannot evaluate {value!r}")

    def _run(self, fn: Function, args: list):
        if len(args) != len(fn.args):
            raise InterpreterError(f"@{fn.name} expects {len(fn.args)} arguments, got {len(args)}")
        env: dict[int, Any] = {arg.id: value for arg, value in zip(fn.args, args)}
        prev: Optional[Block] = None
        block = fn.entry

        while True:
            # Phis read their incoming values simultaneously on block entry.
            phis = [i for i in block.instructions if i.opcode == Opcode.PHI]
            incoming = {}
            for phi in phis:
                for value, pred in zip(phi.operands, phi.targets):
                    if pred is prev:
                        incoming[phi.id] = self._value(value, env)
                        break
                else:
                    raise InterpreterError(f"{phi!r} has no incoming value for {prev!r}")
            env.update(incoming)

            next_block = None
            for inst in block.instructions[len(phis):]:
                self.steps += 1
                if self.steps > MAX_STEPS:
                    raise InterpreterError("Step limit exceeded")
                op = inst.opcode
                if op == Opcode.RET:
                    return self._value(inst.operands[0], env) if inst.operands else None
                if op == Opcode.BR:
                    next_block = inst.targets[0]
                    break
                if op == Opcode.COND_BR:
                    cond = self._value(inst.operands[0], env)
                    next_block = inst.targets[0] if cond else inst.targets[1]
                    break
                env[inst.id] = self._execute(inst, env)

            if next_block is None:
                raise InterpreterError(f"Block {block.name} of @{fn.name} has no terminator")
            prev, block = block, next_block

    def _execute(self, inst: Instruction, env: dict[int, Any]):
        op = inst.opcode
        vals = [self._value(v, env) for v in inst.operands]

        if op == Opcode.ICMP:
            ty = inst.operands[0].type
            width = scalar_type(ty).width
            return _lanewise(ty, lambda a, b: self._icmp(inst.predicate, a, b, width), *vals)
        if op == Opcode.SELECT:
            cond, a, b = vals
            if isinstance(cond, tuple):
                return tuple(x if c else y for c, x, y in zip(cond, a, b))
            return a if cond else b
        if op == Opcode.LOAD:
            return self.read(vals[0], inst.type)
        if op == Opcode.STORE:
            self._store(vals[1], inst.operands[0].type, vals[0])
            return None
        if op == Opcode.GEP:
            ptr, index = vals
            return ptr + index * store_size(inst.operands[0].type.pointee)
        if op == Opcode.CMPXCHG:
            ptr, comparator, new_value = vals
            value_ty = inst.operands[1].type
            original = self.read(ptr, value_ty)
            if original == comparator:
                self._store(ptr, value_ty, new_value)
            return original, int(original == comparator)
        if op == Opcode.BITCAST:
            return vals[0]
        if op == Opcode.EXTRACT_VALUE:
            return vals[0][inst.indices[0]]
        if op == Opcode.INSERT_VALUE:
            agg = list(vals[0])
            agg[inst.indices[0]] = vals[1]
            return tuple(agg)
        if op == Opcode.CALL:
            callee = vals[0]
            if not isinstance(callee, Function):
                raise InterpreterError(f"Indirect call through {callee!r} in {inst!r}")
            return self.call(callee, vals[1:])

        ty = inst.type
        width = scalar_type(ty).width
        return _lanewise(ty, lambda a, b: self._binop(op, a, b, width), *vals)

    def _binop(self, op: Opcode, a: int, b: int, width: int) -> int:
        mask = (1 << width) - 1
        if op == Opcode.ADD:
            return (a + b) & mask
        if op == Opcode.SUB:
            return (a - b) & mask
        if op == Opcode.MUL:
            return (a * b) & mask
        if op in (Opcode.UDIV, Opcode.UREM, Opcode.SDIV, Opcode.SREM) and b == 0:
            raise InterpreterError(f"Division by zero in {op.value}")
        if op == Opcode.UDIV:
            return a // b
        if op == Opcode.UREM:
            return a % b
        if op in (Opcode.SDIV, Opcode.SREM):
            sa, sb = _to_signed(a, width), _to_signed(b, width)
            quotient = abs(sa) // abs(sb)
            if (sa < 0) != (sb < 0):
                quotient = -quotient
            if op == Opcode.SDIV:
                return quotient & mask
            return (sa - quotient * sb) & mask
        if op in (Opcode.SHL, Opcode.LSHR, Opcode.ASHR) and b >= width:
            raise InterpreterError(f"Shift amount {b} is not below width {width} in {op.value}")
        if op == Opcode.SHL:
            return (a << b) & mask
        if op == Opcode.LSHR:
            return a >> b
        if op == Opcode.ASHR:
            return (_to_signed(a, width) >> b) & mask
        if op == Opcode.AND:
            return a & b
        if op == Opcode.OR:
            return a | b
        if op == Opcode.XOR:
            return a ^ b
        raise InterpreterError(f"Cannot execute {op.value}")

    @staticmethod
    def _icmp(predicate: str, a: int, b: int, width: int) -> int:
        if predicate.startswith("s"):
            a, b = _to_signed(a, width), _to_signed(b, width)
            predicate = "u" + predicate[1:]
        result = {
            "eq": a == b,
            "ne": a != b,
            "ugt": a > b,
            "uge": a >= b,
            "ult": a < b,
            "ule": a <= b,
        }[predicate]
        return int(result)
