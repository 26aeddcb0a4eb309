"""
Program Graph - SSA Form

The source IR consumed by the regularizer: a Program owns Functions, a
Function owns Blocks, a Block owns Instructions. Every non-constant value has
a program-unique integer id that serves as its handle in the use-def index.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional, Union

from .errors import dead_reference
from .types import (
    Type, IntType, VectorType, StructType, PointerType, FunctionType, VOID,
    pointer_to,
)
from .use_def import UseDefContext


class Opcode(Enum):
    """Instruction kinds. Dispatch over these is by explicit match, never by class."""
    # Integer arithmetic and bitwise
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    UDIV = "udiv"
    SDIV = "sdiv"
    UREM = "urem"
    SREM = "srem"
    SHL = "shl"
    LSHR = "lshr"
    ASHR = "ashr"
    AND = "and"
    OR = "or"
    XOR = "xor"

    # Comparison and selection
    ICMP = "icmp"
    SELECT = "select"

    # Memory
    LOAD = "load"
    STORE = "store"
    GEP = "getelementptr"
    CMPXCHG = "cmpxchg"

    # Casts
    BITCAST = "bitcast"

    # Aggregates
    EXTRACT_VALUE = "extractvalue"
    INSERT_VALUE = "insertvalue"

    # Calls and control flow
    CALL = "call"
    PHI = "phi"
    BR = "br"
    COND_BR = "cond_br"
    RET = "ret"


BINARY_OPCODES = {
    Opcode.ADD, Opcode.SUB, Opcode.MUL, Opcode.UDIV, Opcode.SDIV,
    Opcode.UREM, Opcode.SREM, Opcode.SHL, Opcode.LSHR, Opcode.ASHR,
    Opcode.AND, Opcode.OR, Opcode.XOR,
}

# Binary operators that may carry the "exact" (no remainder / no shifted-out bits) flag
POSSIBLY_EXACT_OPCODES = {Opcode.UDIV, Opcode.SDIV, Opcode.LSHR, Opcode.ASHR}

TERMINATOR_OPCODES = {Opcode.BR, Opcode.COND_BR, Opcode.RET}

ICMP_PREDICATES = {"eq", "ne", "ugt", "uge", "ult", "ule", "sgt", "sge", "slt", "sle"}


class AtomicOrdering(Enum):
    """Memory orderings of the source IR's atomic instructions."""
    NOT_ATOMIC = "notatomic"
    UNORDERED = "unordered"
    MONOTONIC = "monotonic"
    ACQUIRE = "acquire"
    RELEASE = "release"
    ACQ_REL = "acq_rel"
    SEQ_CST = "seq_cst"


@dataclass(frozen=True)
class Constant:
    """A compile-time constant.

    `value` is an int for integers and pointers, a tuple of ints for vectors,
    a tuple of field values for aggregates, and None for undef.
    """
    type: Type
    value: Any = None

    @property
    def is_undef(self) -> bool:
        return self.value is None

    @classmethod
    def int(cls, ty: IntType, value: int) -> "Constant":
        return cls(ty, value & ty.mask)

    @classmethod
    def splat(cls, ty: Union[IntType, VectorType], value: int) -> "Constant":
        """The integer `value` broadcast to every lane of `ty`."""
        if isinstance(ty, VectorType):
            lane = value & ty.element.mask
            return cls(ty, tuple(lane for _ in range(ty.count)))
        return cls.int(ty, value)

    @classmethod
    def undef(cls, ty: Type) -> "Constant":
        return cls(ty, None)

    def __repr__(self):
        if self.value is None:
            return f"{self.type!r} undef"
        return f"{self.type!r} {self.value}"


@dataclass(eq=False)
class Argument:
    """A formal parameter of a function."""
    type: Type
    index: int
    name: Optional[str] = None
    attrs: dict[str, Any] = field(default_factory=dict)
    parent: Optional["Function"] = field(default=None, repr=False)
    id: int = -1

    def __repr__(self):
        return f"%{self.name or self.index}"


@dataclass(eq=False)
class Instruction:
    """A single SSA instruction.

    Layout of `operands` by opcode:
      call:        [callee, arg0, arg1, ...]
      store:       [value, pointer]
      load:        [pointer]
      gep:         [pointer, index]
      cmpxchg:     [pointer, comparator, new_value]
      select:      [cond, true_value, false_value]
      cond_br:     [cond]            (targets: [if_true, if_false])
      br:          []                (targets: [dest])
      phi:         [incoming values] (targets: parallel incoming blocks)
      insertvalue: [aggregate, element] (indices)
      extractvalue:[aggregate]          (indices)
    """
    opcode: Opcode
    type: Type
    operands: list = field(default_factory=list)
    name: Optional[str] = None
    flags: set[str] = field(default_factory=set)         # exact, nuw, nsw, tail, volatile
    metadata: dict[str, Any] = field(default_factory=dict)
    attrs: set[str] = field(default_factory=set)         # call-site attributes, e.g. nounwind
    predicate: Optional[str] = None                      # icmp only
    indices: tuple[int, ...] = ()                        # extractvalue / insertvalue
    orderings: tuple[AtomicOrdering, ...] = ()           # cmpxchg: (success, failure)
    align: Optional[int] = None
    targets: list["Block"] = field(default_factory=list)
    parent: Optional["Block"] = field(default=None, repr=False)
    id: int = -1

    def __repr__(self):
        return f"%{self.name or self.id} = {self.opcode.value}"

    @property
    def is_terminator(self) -> bool:
        return self.opcode in TERMINATOR_OPCODES

    @property
    def callee(self):
        if self.opcode != Opcode.CALL:
            raise TypeError(f"{self!r} is not a call")
        return self.operands[0]

    @property
    def called_function(self) -> Optional["Function"]:
        """The directly called Function, or None for indirect calls."""
        callee = self.callee
        return callee if isinstance(callee, Function) else None

    @property
    def args(self) -> list:
        if self.opcode != Opcode.CALL:
            raise TypeError(f"{self!r} is not a call")
        return self.operands[1:]

    @property
    def function(self) -> Optional["Function"]:
        return self.parent.parent if self.parent is not None else None


@dataclass(eq=False)
class Block:
    """A basic block: an ordered list of instructions ending in a terminator."""
    name: str
    instructions: list[Instruction] = field(default_factory=list)
    parent: Optional["Function"] = field(default=None, repr=False)

    def __repr__(self):
        return f"Block({self.name}, {len(self.instructions)} insts)"

    @property
    def terminator(self) -> Optional[Instruction]:
        if self.instructions and self.instructions[-1].is_terminator:
            return self.instructions[-1]
        return None


@dataclass(eq=False)
class Function:
    """A function definition, or a declaration when it has no blocks."""
    name: str
    ftype: FunctionType
    args: list[Argument] = field(default_factory=list)
    blocks: list[Block] = field(default_factory=list)
    attrs: set[str] = field(default_factory=set)
    parent: Optional["Program"] = field(default=None, repr=False)
    id: int = -1

    def __repr__(self):
        return f"@{self.name}"

    @property
    def type(self) -> PointerType:
        return pointer_to(self.ftype)

    @property
    def is_declaration(self) -> bool:
        return not self.blocks

    @property
    def is_intrinsic(self) -> bool:
        return self.name.startswith("llvm.")

    @property
    def return_type(self) -> Type:
        return self.ftype.ret

    @property
    def entry(self) -> Optional[Block]:
        return self.blocks[0] if self.blocks else None

    def get_block(self, name: str) -> Optional[Block]:
        for block in self.blocks:
            if block.name == name:
                return block
        return None

    def instructions(self) -> Iterator[Instruction]:
        for block in self.blocks:
            yield from block.instructions


# Anything that can appear as an operand
Value = Union[Constant, Argument, Instruction, Function]


class Program:
    """A set of functions plus the use-def index that ties them together.

    All structural mutation goes through this class so that the use-def index
    stays exact: operands are set with set_operand(), instructions enter a
    block through insert()/insert_before() and leave through
    erase_instruction().
    """

    def __init__(self, name: str = "module"):
        self.name = name
        self.functions: dict[str, Function] = {}
        self.use_def = UseDefContext()
        self._next_id = 0

    def __repr__(self):
        return f"Program({self.name}, {len(self.functions)} functions)"

    def _new_id(self) -> int:
        value_id = self._next_id
        self._next_id += 1
        return value_id

    # ==================== Functions ====================

    def add_function(self, name: str, ftype: FunctionType,
                     arg_names: Optional[list[str]] = None) -> Function:
        """Create an empty function (a declaration until blocks are added)."""
        if name in self.functions:
            raise ValueError(f"Function @{name} already exists")
        fn = Function(name=name, ftype=ftype, parent=self, id=self._new_id())
        for idx, param_ty in enumerate(ftype.params):
            arg_name = arg_names[idx] if arg_names and idx < len(arg_names) else None
            fn.args.append(Argument(param_ty, idx, arg_name, parent=fn, id=self._new_id()))
        self.functions[name] = fn
        return fn

    def get_function(self, name: str) -> Optional[Function]:
        return self.functions.get(name)

    def get_or_insert_function(self, name: str, ftype: FunctionType) -> Function:
        """Return the function called `name`, creating a declaration if absent."""
        fn = self.functions.get(name)
        if fn is None:
            fn = self.add_function(name, ftype)
        return fn

    def erase_function(self, fn: Function) -> None:
        """Remove a function that nothing references any more."""
        if self.use_def.has_uses(fn):
            raise dead_reference(
                f"Cannot erase @{fn.name}: {self.use_def.use_count(fn)} uses remain", fn)
        for block in fn.blocks:
            for inst in block.instructions:
                self.use_def.untrack(inst)
        fn.blocks.clear()
        del self.functions[fn.name]
        fn.parent = None

    def defined_functions(self) -> list[Function]:
        return [fn for fn in self.functions.values() if not fn.is_declaration]

    # ==================== Blocks ====================

    def add_block(self, fn: Function, name: str, after: Optional[Block] = None) -> Block:
        block = Block(name=name, parent=fn)
        if after is None:
            fn.blocks.append(block)
        else:
            fn.blocks.insert(fn.blocks.index(after) + 1, block)
        return block

    def split_block(self, block: Block, index: int, name: str) -> Block:
        """Move block.instructions[index:] into a new block placed right after `block`.

        Phis in the successors of the moved terminator are updated to name
        the new block as their predecessor.
        """
        fn = block.parent
        new_block = self.add_block(fn, name, after=block)
        moved = block.instructions[index:]
        del block.instructions[index:]
        for inst in moved:
            inst.parent = new_block
        new_block.instructions = moved

        term = new_block.terminator
        if term is not None:
            for succ in term.targets:
                for inst in succ.instructions:
                    if inst.opcode != Opcode.PHI:
                        continue
                    inst.targets = [new_block if b is block else b for b in inst.targets]
        return new_block

    # ==================== Instructions ====================

    def insert(self, inst: Instruction, block: Block, index: Optional[int] = None) -> Instruction:
        """Place a new instruction in `block` (at the end by default) and record its uses."""
        if inst.parent is not None:
            raise ValueError(f"{inst!r} is already placed in {inst.parent!r}")
        if inst.id < 0:
            inst.id = self._new_id()
        inst.parent = block
        if index is None:
            block.instructions.append(inst)
        else:
            block.instructions.insert(index, inst)
        self.use_def.track(inst)
        return inst

    def insert_before(self, inst: Instruction, before: Instruction) -> Instruction:
        block = before.parent
        if block is None:
            raise ValueError(f"{before!r} is not placed in a block")
        return self.insert(inst, block, block.instructions.index(before))

    def erase_instruction(self, inst: Instruction) -> None:
        """Unlink an instruction from its block; it must have no remaining users."""
        if self.use_def.has_uses(inst):
            raise dead_reference(
                f"Cannot erase {inst!r}: {self.use_def.use_count(inst)} uses remain", inst)
        self.use_def.untrack(inst)
        if inst.parent is not None:
            inst.parent.instructions.remove(inst)
            inst.parent = None

    # ==================== Uses ====================

    def set_operand(self, inst: Instruction, index: int, value: Value) -> None:
        self.use_def.set_operand(inst, index, value)

    def set_called_function(self, call: Instruction, fn: Function) -> None:
        if call.opcode != Opcode.CALL:
            raise TypeError(f"{call!r} is not a call")
        self.use_def.set_operand(call, 0, fn)

    def replace_all_uses(self, old: Value, new: Value) -> int:
        return self.use_def.replace_all_uses(old, new)

    def users(self, value: Value) -> list[Instruction]:
        return self.use_def.users(value)

    def has_uses(self, value: Value) -> bool:
        return self.use_def.has_uses(value)

    def all_instructions(self) -> Iterator[Instruction]:
        for fn in self.functions.values():
            yield from fn.instructions()


def struct_of(*fields: Type) -> StructType:
    return StructType(tuple(fields))


def void_function_type(*params: Type) -> FunctionType:
    return FunctionType(VOID, tuple(params))
