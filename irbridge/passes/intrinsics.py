"""
Intrinsic Lowering

The target IR has no counterpart for three intrinsics. Each call is
redirected to a helper function that implements the intrinsic with ordinary
instructions:

- llvm.memset.*               -> spirv.llvm_memset_*[.volatile] (fill loop)
- llvm.fshl.*                 -> spirv.llvm_fshl_*
- llvm.umul.with.overflow.*   -> spirv.llvm_umul_with_overflow_*

Helpers are shared through the HelperFunctionCache: one per distinct
intrinsic name (i.e. per width / vector shape), with a body built only once.
"""

from typing import Optional

from ..errors import precondition
from ..ir import Constant, Function, Instruction, Program
from ..ir_builder import IRBuilder
from ..types import I1, StructType, is_integer_like, scalar_width, with_scalar
from .helpers import HelperFunctionCache, intrinsic_helper_name
from .memset_expansion import expand_memset_as_loop, memset_is_volatile

MEMSET_PREFIX = "llvm.memset."
FSHL_PREFIX = "llvm.fshl."
UMUL_WITH_OVERFLOW_PREFIX = "llvm.umul.with.overflow."


def intrinsic_kind(fn: Optional[Function]) -> Optional[str]:
    """Which lowering applies to a call of `fn`: "memset", "fshl", "umul_with_overflow" or None."""
    if fn is None or not fn.is_intrinsic:
        return None
    if fn.name.startswith(MEMSET_PREFIX):
        return "memset"
    if fn.name.startswith(FSHL_PREFIX):
        return "fshl"
    if fn.name.startswith(UMUL_WITH_OVERFLOW_PREFIX):
        return "umul_with_overflow"
    return None


class IntrinsicLowering:
    """Redirects unsupported intrinsic calls to synthesized helpers."""

    def __init__(self, program: Program, cache: HelperFunctionCache):
        self.program = program
        self.cache = cache
        self.calls_redirected = 0
        self.memsets_skipped = 0
        self.bodies_built = 0

    def lower(self, call: Instruction) -> bool:
        """Lower `call` if it targets one of the handled intrinsics."""
        kind = intrinsic_kind(call.called_function)
        if kind == "memset":
            return self.lower_memset(call)
        if kind == "fshl":
            self.lower_funnel_shift_left(call)
            return True
        if kind == "umul_with_overflow":
            self.lower_umul_with_overflow(call)
            return True
        return False

    def _redirect(self, call: Instruction, helper: Function) -> None:
        self.program.set_called_function(call, helper)
        self.calls_redirected += 1

    # ==================== memset ====================

    def lower_memset(self, call: Instruction) -> bool:
        """Redirect a non-constant memset to a loop-expanded helper.

        A memset whose value and length are both constants is left alone:
        the encoder emits it directly as a store of a constant array.
        """
        _, val, length, _ = call.args
        if isinstance(val, Constant) and isinstance(length, Constant):
            self.memsets_skipped += 1
            return False

        name = intrinsic_helper_name(call)
        volatile = memset_is_volatile(call)
        if volatile:
            name += ".volatile"

        helper = self.cache.get_or_create(name, call.called_function.ftype)
        if helper.is_declaration:
            self._build_memset_func(helper, call, volatile)
        self._redirect(call, helper)
        return True

    def _build_memset_func(self, helper: Function, call: Instruction, volatile: bool) -> None:
        dest, val, length, is_volatile = helper.args
        dest.name, val.name, length.name, is_volatile.name = "dest", "val", "len", "isvolatile"
        is_volatile.attrs["immarg"] = True
        if call.align is not None:
            dest.attrs["align"] = call.align

        b = IRBuilder(self.program)
        b.block_in(helper, "entry")
        memset = b.call(call.called_function, [dest, val, length, Constant.int(I1, int(volatile))])
        memset.align = call.align
        b.ret_void()
        expand_memset_as_loop(self.program, memset)
        self.bodies_built += 1

    # ==================== fshl ====================

    def lower_funnel_shift_left(self, call: Instruction) -> None:
        ftype = call.called_function.ftype
        if not is_integer_like(ftype.ret) or len(ftype.params) != 3:
            raise precondition(f"Unexpected funnel shift signature {ftype!r}", call)
        helper = self.cache.get_or_create(intrinsic_helper_name(call), ftype)
        self.build_funnel_shift_left_func(helper)
        self._redirect(call, helper)

    def build_funnel_shift_left_func(self, helper: Function) -> None:
        """
        Fill in fshl(a, b, r) for integers (or lane-wise for vectors):

            r'     = r urem W
            result = (a << r') | ((b >> 1) >> (W - 1 - r'))

        Conceptually a and b are concatenated (a high), rotated left by r and
        the high W bits kept. The right term is split into two shifts so that
        r' == 0 yields zero without ever shifting by W.
        """
        if not helper.is_declaration:
            return

        a, b_arg, rotate = helper.args
        a.name, b_arg.name, rotate.name = "a", "b", "rotate"
        ty = helper.return_type
        width = scalar_width(ty)

        b = IRBuilder(self.program)
        b.block_in(helper, "rotate")
        if width == 1:
            # Rotating by 0 mod 1 keeps a; b >> 1 would already shift by W.
            b.ret(a)
            self.bodies_built += 1
            return
        rotate_mod = b.urem(rotate, Constant.splat(ty, width), "rotate.mod")
        # The more significant int moves left; the vacated low bits are zero-filled.
        shift_left = b.shl(a, rotate_mod, "shl")
        # The top rotate.mod bits of the second int fill the vacated space.
        sub_rotate = b.sub(Constant.splat(ty, width - 1), rotate_mod, "sub.rotate")
        pre_shift = b.lshr(b_arg, Constant.splat(ty, 1), "b.shr1")
        shift_right = b.lshr(pre_shift, sub_rotate, "lshr")
        b.ret(b.or_(shift_left, shift_right, "fshl"))
        self.bodies_built += 1

    # ==================== umul.with.overflow ====================

    def lower_umul_with_overflow(self, call: Instruction) -> None:
        ftype = call.called_function.ftype
        if not isinstance(ftype.ret, StructType) or len(ftype.params) != 2:
            raise precondition(f"Unexpected umul.with.overflow signature {ftype!r}", call)
        helper = self.cache.get_or_create(intrinsic_helper_name(call), ftype)
        self.build_umul_with_overflow_func(helper)
        self._redirect(call, helper)

    def build_umul_with_overflow_func(self, helper: Function) -> None:
        """
        Fill in umul.with.overflow(a, b) -> { a * b, overflow }:

            mul      = a * b                       (modular)
            divisor  = a == 0 ? 1 : a
            overflow = a == 0 ? false : (mul udiv divisor) != b

        The wrapped product divided back by a reproduces b exactly when no
        wrap happened. A zero multiplicand never overflows, and the select
        keeps the division away from zero.
        """
        if not helper.is_declaration:
            return

        a, b_arg = helper.args
        a.name, b_arg.name = "a", "b"
        struct_ty = helper.return_type
        ty = a.type
        flag_ty = with_scalar(ty, I1)

        b = IRBuilder(self.program)
        b.block_in(helper, "entry")
        mul = b.mul(a, b_arg, "mul")
        is_zero = b.eq(a, Constant.splat(ty, 0), "a.is.zero")
        divisor = b.select(is_zero, Constant.splat(ty, 1), a, "divisor")
        div = b.udiv(mul, divisor, "div")
        mismatch = b.ne(div, b_arg, "div.ne")
        overflow = b.select(is_zero, Constant.splat(flag_ty, 0), mismatch, "overflow")
        agg = b.insert_value(Constant.undef(struct_ty), mul, 0, "agg0")
        res = b.insert_value(agg, overflow, 1, "agg1")
        b.ret(res)
        self.bodies_built += 1
