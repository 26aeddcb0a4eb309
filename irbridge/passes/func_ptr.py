"""
Function-Pointer Builtin Lowering

Builtins such as `__spirv_EnqueueKernel` take the invoke function as a
pointer argument. The front-end passes that pointer through a bitcast to a
generic function-pointer type, which the target IR cannot encode. Every call
site gets its casts stripped and is redirected to the builtin's decorated
name; casts and declarations left without users are erased afterwards.
"""

from ..builtins import builtin_opcode, decorate_builtin, typed_builtin_name
from ..ir import Function, Instruction, Opcode, Program, Value
from ..types import FunctionType, is_function_pointer
from .helpers import get_or_insert_overload


def has_function_pointer_arg(fn: Function) -> bool:
    return any(is_function_pointer(param) for param in fn.ftype.params)


def strip_casts(value: Value) -> Value:
    """Look through a chain of bitcasts to the value being cast."""
    while isinstance(value, Instruction) and value.opcode == Opcode.BITCAST:
        value = value.operands[0]
    return value


class FunctionPointerLowering:
    """Redirects calls of function-pointer builtins to their decorated declarations."""

    def __init__(self, program: Program):
        self.program = program
        self.calls_redirected = 0
        self.casts_erased = 0
        self.declarations_erased = 0
        self.messages: list[str] = []

    def collect(self) -> list[tuple[Function, str]]:
        """Builtins that take a function pointer, paired with their target opcode."""
        work = []
        for fn in self.program.functions.values():
            if not has_function_pointer_arg(fn):
                continue
            op = builtin_opcode(fn.name)
            if op is not None:
                work.append((fn, op))
        return work

    def run(self) -> None:
        for fn, op in self.collect():
            self.lower(fn, op)

    def lower(self, fn: Function, op: str) -> None:
        casts: list[Instruction] = []
        targets: dict[str, Function] = {}

        for call in self.program.users(fn):
            if call.opcode != Opcode.CALL or call.callee is not fn:
                continue
            for idx, arg in enumerate(call.args):
                if not is_function_pointer(arg.type):
                    continue
                stripped = strip_casts(arg)
                if stripped is not arg:
                    casts.append(arg)
                    self.program.set_operand(call, idx + 1, stripped)

            target = self._target(fn, op, call)
            self.program.set_called_function(call, target)
            self.calls_redirected += 1
            targets[target.name] = target

        for target in targets.values():
            self.messages.append(f"@{fn.name} -> @{target.name}")

        for cast in casts:
            self._erase_if_no_use(cast)
        if (fn.name not in targets and fn.parent is self.program
                and not self.program.has_uses(fn)):
            self.program.erase_function(fn)
            self.declarations_erased += 1

    def _target(self, fn: Function, op: str, call: Instruction) -> Function:
        """Decorated declaration typed after the stripped arguments of `call`.

        Call sites passing invoke functions of different types get separate
        declarations, suffixed with their parameter types.
        """
        params = tuple(a.type for a in call.args)
        ftype = FunctionType(fn.ftype.ret, params)
        target, created = get_or_insert_overload(
            self.program, decorate_builtin(op), typed_builtin_name(op, *params), ftype)
        if created:
            target.attrs |= fn.attrs
        return target

    def _erase_if_no_use(self, cast: Instruction) -> None:
        # Chains are visited from the outermost cast inwards.
        while (isinstance(cast, Instruction) and cast.opcode == Opcode.BITCAST
               and cast.parent is not None and not self.program.has_uses(cast)):
            inner = cast.operands[0]
            self.program.erase_instruction(cast)
            self.casts_erased += 1
            cast = inner
