"""Shared fixtures and program builders for regularizer tests."""

import os
import sys

# Add the repo root to the path for imports
_this_dir = os.path.dirname(os.path.abspath(__file__))
_repo_root = os.path.dirname(os.path.dirname(_this_dir))
sys.path.insert(0, _repo_root)

from irbridge import (
    IRBuilder,
    Program,
    Constant,
    FunctionType,
    StructType,
    PassConfig,
    I1,
    I8,
    I32,
    pointer_to,
    void_function_type,
    mangle_type,
)
from irbridge.types import with_scalar


def _cfg(name, **opts):
    """Helper to create PassConfig."""
    return PassConfig(name=name, enabled=True, options=opts)


def declare_memset(program: Program, len_ty=I32):
    name = f"llvm.memset.p0i8.{mangle_type(len_ty)}"
    return program.get_or_insert_function(
        name, void_function_type(pointer_to(I8), I8, len_ty, I1))


def declare_fshl(program: Program, ty):
    return program.get_or_insert_function(
        f"llvm.fshl.{mangle_type(ty)}", FunctionType(ty, (ty, ty, ty)))


def declare_umul(program: Program, ty):
    ret = StructType((ty, with_scalar(ty, I1)))
    return program.get_or_insert_function(
        f"llvm.umul.with.overflow.{mangle_type(ty)}", FunctionType(ret, (ty, ty)))


def build_memset_kernel(program: Program, name="fill", volatile=False, align=None):
    """define void @fill(i8* %p, i8 %v, i32 %n) { memset(p, v, n, volatile); ret }"""
    memset = declare_memset(program)
    b = IRBuilder(program)
    fn = b.function(name, void_function_type(pointer_to(I8), I8, I32), ["p", "v", "n"])
    b.block_in(fn, "entry")
    p, v, n = fn.args
    call = b.call(memset, [p, v, n, Constant.int(I1, int(volatile))])
    call.align = align
    b.ret_void()
    return fn, call


def build_fshl_kernel(program: Program, ty, name="rot"):
    """define ty @rot(ty %a, ty %b, ty %r) { %x = fshl(a, b, r); ret %x }"""
    fshl = declare_fshl(program, ty)
    b = IRBuilder(program)
    fn = b.function(name, FunctionType(ty, (ty, ty, ty)), ["a", "b", "r"])
    b.block_in(fn, "entry")
    call = b.call(fshl, list(fn.args), "x")
    b.ret(call)
    return fn, call


def build_umul_kernel(program: Program, ty, name="mulo"):
    """define { ty, i1 } @mulo(ty %a, ty %b) { %x = umul.with.overflow(a, b); ret %x }"""
    umul = declare_umul(program, ty)
    b = IRBuilder(program)
    fn = b.function(name, FunctionType(umul.return_type, (ty, ty)), ["a", "b"])
    b.block_in(fn, "entry")
    call = b.call(umul, list(fn.args), "x")
    b.ret(call)
    return fn, call
