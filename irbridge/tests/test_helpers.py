"""Tests for helper naming, the helper-function cache and builtin names."""

import unittest

from irbridge.tests.conftest import (
    IRBuilder, Program, FunctionType, I8, I32, build_fshl_kernel, declare_fshl,
)
from irbridge import ErrorKind, RegularizationError, VectorType, void_function_type
from irbridge.builtins import (
    builtin_opcode, decorate_builtin, demangle_builtin_name, helper_name, typed_builtin_name,
)
from irbridge.passes import HelperFunctionCache, get_or_insert_overload, intrinsic_helper_name
from irbridge.types import I64, mangle_type, pointer_to, StructType, I1


class TestHelperNames(unittest.TestCase):
    """Test the canonical helper naming rule."""

    def test_separators_become_underscores(self):
        self.assertEqual(helper_name("llvm.fshl.i32"), "spirv.llvm_fshl_i32")
        self.assertEqual(helper_name("llvm.umul.with.overflow.v4i16"),
                         "spirv.llvm_umul_with_overflow_v4i16")
        self.assertEqual(helper_name("llvm.memset.p0i8.i64"), "spirv.llvm_memset_p0i8_i64")

    def test_name_from_call(self):
        program = Program()
        _, call = build_fshl_kernel(program, I32)
        self.assertEqual(intrinsic_helper_name(call), "spirv.llvm_fshl_i32")

    def test_non_call_is_precondition_violation(self):
        program = Program()
        fn, call = build_fshl_kernel(program, I32)
        ret = fn.entry.terminator
        with self.assertRaises(RegularizationError) as ctx:
            intrinsic_helper_name(ret)
        self.assertEqual(ctx.exception.kind, ErrorKind.PRECONDITION)

    def test_indirect_call_is_precondition_violation(self):
        program = Program()
        b = IRBuilder(program)
        fty = FunctionType(I32, ())
        fn = b.function("f", FunctionType(I32, (pointer_to(fty),)), ["fp"])
        b.block_in(fn, "entry")
        call = b.call(fn.args[0], [], "c")
        b.ret(call)
        with self.assertRaises(RegularizationError) as ctx:
            intrinsic_helper_name(call)
        self.assertEqual(ctx.exception.kind, ErrorKind.PRECONDITION)
        self.assertIn("Missing called function", ctx.exception.message)

    def test_mangle_type(self):
        self.assertEqual(mangle_type(I32), "i32")
        self.assertEqual(mangle_type(VectorType(I8, 4)), "v4i8")
        self.assertEqual(mangle_type(pointer_to(I8)), "p0i8")
        self.assertEqual(mangle_type(StructType((I32, I1))), "sl_i32i1s")
        self.assertEqual(mangle_type(pointer_to(void_function_type(pointer_to(I8)), 1)),
                         "p1f_isVoidp0i8f")


class TestHelperFunctionCache(unittest.TestCase):
    """Test create-or-reuse semantics."""

    def test_create_then_reuse(self):
        program = Program()
        cache = HelperFunctionCache(program)
        fty = FunctionType(I32, (I32, I32, I32))

        first = cache.get_or_create("spirv.llvm_fshl_i32", fty)
        second = cache.get_or_create("spirv.llvm_fshl_i32", fty)
        self.assertIs(first, second)
        self.assertTrue(first.is_declaration)
        self.assertEqual((cache.created, cache.reused), (1, 1))
        self.assertEqual(len(cache), 1)
        self.assertIn("spirv.llvm_fshl_i32", cache)
        self.assertIs(program.get_function("spirv.llvm_fshl_i32"), first)

    def test_prelinked_function_is_reused(self):
        program = Program()
        fty = FunctionType(I32, (I32, I32, I32))
        linked = program.add_function("spirv.llvm_fshl_i32", fty)
        cache = HelperFunctionCache(program)

        self.assertIsNone(cache._helpers.get("spirv.llvm_fshl_i32"))
        self.assertIs(cache.lookup("spirv.llvm_fshl_i32"), linked)
        self.assertIs(cache.get_or_create("spirv.llvm_fshl_i32", fty), linked)
        self.assertEqual(cache.created, 0)

    def test_signature_mismatch(self):
        program = Program()
        cache = HelperFunctionCache(program)
        cache.get_or_create("spirv.llvm_fshl_i32", FunctionType(I32, (I32, I32, I32)))
        with self.assertRaises(RegularizationError) as ctx:
            cache.get_or_create("spirv.llvm_fshl_i32", FunctionType(I64, (I64, I64, I64)))
        self.assertEqual(ctx.exception.kind, ErrorKind.PRECONDITION)

    def test_intrinsic_declarations_are_distinct_per_width(self):
        program = Program()
        self.assertIsNot(declare_fshl(program, I32), declare_fshl(program, I64))
        self.assertIs(declare_fshl(program, I32), declare_fshl(program, I32))


class TestBuiltinNames(unittest.TestCase):
    """Test builtin opcode lookup and decoration."""

    def test_plain_and_suffixed_names(self):
        self.assertEqual(builtin_opcode("__spirv_EnqueueKernel"), "EnqueueKernel")
        self.assertEqual(builtin_opcode("__spirv_AtomicCompareExchange.i64"),
                         "AtomicCompareExchange")
        self.assertIsNone(builtin_opcode("__spirv_NotAnOpcode"))
        self.assertIsNone(builtin_opcode("enqueue_kernel"))

    def test_mangled_names(self):
        mangled = "_Z21__spirv_EnqueueKernelPFvvEi"
        self.assertEqual(demangle_builtin_name(mangled), "__spirv_EnqueueKernel")
        self.assertEqual(builtin_opcode(mangled), "EnqueueKernel")
        self.assertEqual(demangle_builtin_name("plain"), "plain")

    def test_decoration(self):
        self.assertEqual(decorate_builtin("GetKernelWorkGroupSize"),
                         "__spirv_GetKernelWorkGroupSize")
        self.assertEqual(typed_builtin_name("AtomicCompareExchange", I64),
                         "__spirv_AtomicCompareExchange.i64")
        self.assertEqual(typed_builtin_name("AtomicCompareExchange", pointer_to(I32, 3)),
                         "__spirv_AtomicCompareExchange.p3i32")
        self.assertEqual(typed_builtin_name("GetKernelWorkGroupSize", pointer_to(I8), I32),
                         "__spirv_GetKernelWorkGroupSize.p0i8i32")
        with self.assertRaises(ValueError):
            decorate_builtin("Bogus")


class TestOverloadedDeclarations(unittest.TestCase):
    """Test the plain-name-first overload lookup."""

    def test_plain_then_overload(self):
        program = Program()
        narrow, wide = FunctionType(I32, (I32,)), FunctionType(I64, (I64,))

        fn, created = get_or_insert_overload(program, "__spirv_X", "__spirv_X.i32", narrow)
        self.assertTrue(created)
        self.assertEqual(fn.name, "__spirv_X")

        again, created = get_or_insert_overload(program, "__spirv_X", "__spirv_X.i32", narrow)
        self.assertIs(again, fn)
        self.assertFalse(created)

        other, created = get_or_insert_overload(program, "__spirv_X", "__spirv_X.i64", wide)
        self.assertTrue(created)
        self.assertEqual(other.name, "__spirv_X.i64")
        self.assertEqual(other.ftype, wide)

    def test_both_names_taken(self):
        program = Program()
        program.add_function("__spirv_X", FunctionType(I32, ()))
        program.add_function("__spirv_X.i64", FunctionType(I8, ()))
        with self.assertRaises(RegularizationError) as ctx:
            get_or_insert_overload(program, "__spirv_X", "__spirv_X.i64", FunctionType(I64, ()))
        self.assertEqual(ctx.exception.kind, ErrorKind.PRECONDITION)
