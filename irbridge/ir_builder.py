"""
IR Builder - Functional SSA API

Provides a builder API for emitting instructions into a Program. The builder
has an insertion point (the end of a block, or just before an instruction);
every emitted instruction is placed there and its operand uses are recorded.
"""

from typing import Optional, Sequence

from .ir import (
    AtomicOrdering, Block, Function, ICMP_PREDICATES, Instruction,
    Opcode, Program, Value,
)
from .types import (
    FunctionType, I1, PointerType, StructType, Type, VOID,
    with_scalar,
)


class IRBuilder:
    """Builder for constructing instructions in SSA form."""

    def __init__(self, program: Program, block: Optional[Block] = None):
        self.program = program
        self._block: Optional[Block] = block
        self._before: Optional[Instruction] = None

    # === Insertion point ===

    def position_at_end(self, block: Block) -> "IRBuilder":
        self._block = block
        self._before = None
        return self

    def position_before(self, inst: Instruction) -> "IRBuilder":
        if inst.parent is None:
            raise ValueError(f"{inst!r} is not placed in a block")
        self._block = inst.parent
        self._before = inst
        return self

    @property
    def block(self) -> Optional[Block]:
        return self._block

    def _emit(self, inst: Instruction) -> Instruction:
        """Add an instruction at the insertion point."""
        if self._before is not None:
            return self.program.insert_before(inst, self._before)
        if self._block is None:
            raise ValueError("IRBuilder has no insertion point")
        return self.program.insert(inst, self._block)

    # === Functions and blocks ===

    def function(self, name: str, ftype: FunctionType,
                 arg_names: Optional[list[str]] = None) -> Function:
        return self.program.add_function(name, ftype, arg_names)

    def block_in(self, fn: Function, name: str) -> Block:
        """Append a block to `fn` and move the insertion point to its end."""
        block = self.program.add_block(fn, name)
        self.position_at_end(block)
        return block

    # === Integer operations ===

    def binop(self, opcode: Opcode, a: Value, b: Value, name: Optional[str] = None,
              flags: Sequence[str] = ()) -> Instruction:
        """Emit a binary integer operation."""
        return self._emit(Instruction(opcode, a.type, [a, b], name, flags=set(flags)))

    def add(self, a: Value, b: Value, name: Optional[str] = None) -> Instruction:
        return self.binop(Opcode.ADD, a, b, name)

    def sub(self, a: Value, b: Value, name: Optional[str] = None) -> Instruction:
        return self.binop(Opcode.SUB, a, b, name)

    def mul(self, a: Value, b: Value, name: Optional[str] = None,
            flags: Sequence[str] = ()) -> Instruction:
        return self.binop(Opcode.MUL, a, b, name, flags)

    def udiv(self, a: Value, b: Value, name: Optional[str] = None,
             flags: Sequence[str] = ()) -> Instruction:
        return self.binop(Opcode.UDIV, a, b, name, flags)

    def sdiv(self, a: Value, b: Value, name: Optional[str] = None,
             flags: Sequence[str] = ()) -> Instruction:
        return self.binop(Opcode.SDIV, a, b, name, flags)

    def urem(self, a: Value, b: Value, name: Optional[str] = None) -> Instruction:
        return self.binop(Opcode.UREM, a, b, name)

    def shl(self, a: Value, b: Value, name: Optional[str] = None) -> Instruction:
        return self.binop(Opcode.SHL, a, b, name)

    def lshr(self, a: Value, b: Value, name: Optional[str] = None,
             flags: Sequence[str] = ()) -> Instruction:
        return self.binop(Opcode.LSHR, a, b, name, flags)

    def ashr(self, a: Value, b: Value, name: Optional[str] = None,
             flags: Sequence[str] = ()) -> Instruction:
        return self.binop(Opcode.ASHR, a, b, name, flags)

    def or_(self, a: Value, b: Value, name: Optional[str] = None) -> Instruction:
        return self.binop(Opcode.OR, a, b, name)

    def icmp(self, predicate: str, a: Value, b: Value, name: Optional[str] = None) -> Instruction:
        if predicate not in ICMP_PREDICATES:
            raise ValueError(f"Unknown icmp predicate: {predicate}")
        ty = with_scalar(a.type, I1)
        return self._emit(Instruction(Opcode.ICMP, ty, [a, b], name, predicate=predicate))

    def eq(self, a: Value, b: Value, name: Optional[str] = None) -> Instruction:
        return self.icmp("eq", a, b, name)

    def ne(self, a: Value, b: Value, name: Optional[str] = None) -> Instruction:
        return self.icmp("ne", a, b, name)

    def ult(self, a: Value, b: Value, name: Optional[str] = None) -> Instruction:
        return self.icmp("ult", a, b, name)

    def select(self, cond: Value, a: Value, b: Value, name: Optional[str] = None) -> Instruction:
        """Conditional select: cond ? a : b (lane-wise for vector conditions)"""
        return self._emit(Instruction(Opcode.SELECT, a.type, [cond, a, b], name))

    # === Memory operations ===

    def load(self, ptr: Value, name: Optional[str] = None, align: Optional[int] = None,
             volatile: bool = False) -> Instruction:
        """Load from memory at address."""
        ptr_ty = ptr.type
        if not isinstance(ptr_ty, PointerType):
            raise TypeError(f"load expects a pointer, got {ptr_ty!r}")
        flags = {"volatile"} if volatile else set()
        return self._emit(Instruction(Opcode.LOAD, ptr_ty.pointee, [ptr], name,
                                      flags=flags, align=align))

    def store(self, value: Value, ptr: Value, align: Optional[int] = None,
              volatile: bool = False) -> Instruction:
        """Store value to memory at address."""
        flags = {"volatile"} if volatile else set()
        return self._emit(Instruction(Opcode.STORE, VOID, [value, ptr], flags=flags, align=align))

    def gep(self, ptr: Value, index: Value, name: Optional[str] = None) -> Instruction:
        """Address of element `index` counted in units of the pointee type."""
        return self._emit(Instruction(Opcode.GEP, ptr.type, [ptr, index], name))

    def cmpxchg(self, ptr: Value, comparator: Value, new_value: Value,
                success: AtomicOrdering = AtomicOrdering.SEQ_CST,
                failure: AtomicOrdering = AtomicOrdering.SEQ_CST,
                name: Optional[str] = None) -> Instruction:
        """Atomic compare-and-swap producing { original, succeeded }."""
        ty = StructType((comparator.type, I1))
        return self._emit(Instruction(Opcode.CMPXCHG, ty, [ptr, comparator, new_value], name,
                                      orderings=(success, failure)))

    # === Casts and aggregates ===

    def bitcast(self, value: Value, ty: Type, name: Optional[str] = None) -> Instruction:
        return self._emit(Instruction(Opcode.BITCAST, ty, [value], name))

    def extract_value(self, agg: Value, index: int, name: Optional[str] = None) -> Instruction:
        agg_ty = agg.type
        if not isinstance(agg_ty, StructType):
            raise TypeError(f"extractvalue expects an aggregate, got {agg_ty!r}")
        return self._emit(Instruction(Opcode.EXTRACT_VALUE, agg_ty.fields[index], [agg], name,
                                      indices=(index,)))

    def insert_value(self, agg: Value, element: Value, index: int,
                     name: Optional[str] = None) -> Instruction:
        return self._emit(Instruction(Opcode.INSERT_VALUE, agg.type, [agg, element], name,
                                      indices=(index,)))

    # === Calls ===

    def call(self, callee: Value, args: Sequence[Value], name: Optional[str] = None,
             tail: bool = False, attrs: Sequence[str] = ()) -> Instruction:
        callee_ty = callee.type
        if not isinstance(callee_ty, PointerType) or not isinstance(callee_ty.pointee, FunctionType):
            raise TypeError(f"call expects a function pointer, got {callee_ty!r}")
        flags = {"tail"} if tail else set()
        return self._emit(Instruction(Opcode.CALL, callee_ty.pointee.ret, [callee, *args], name,
                                      flags=flags, attrs=set(attrs)))

    # === Control flow ===

    def phi(self, ty: Type, incoming: Sequence[tuple[Value, Block]],
            name: Optional[str] = None) -> Instruction:
        values = [v for v, _ in incoming]
        blocks = [b for _, b in incoming]
        return self._emit(Instruction(Opcode.PHI, ty, values, name, targets=blocks))

    def add_incoming(self, phi: Instruction, value: Value, block: Block) -> None:
        """Append an incoming edge to a phi that is already placed."""
        phi.operands.append(value)
        phi.targets.append(block)
        self.program.use_def.track_operand(phi, len(phi.operands) - 1)

    def br(self, dest: Block) -> Instruction:
        return self._emit(Instruction(Opcode.BR, VOID, [], targets=[dest]))

    def cond_br(self, cond: Value, if_true: Block, if_false: Block) -> Instruction:
        return self._emit(Instruction(Opcode.COND_BR, VOID, [cond], targets=[if_true, if_false]))

    def ret(self, value: Optional[Value] = None) -> Instruction:
        operands = [] if value is None else [value]
        return self._emit(Instruction(Opcode.RET, VOID, operands))

    def ret_void(self) -> Instruction:
        return self.ret()
