"""Tests for the regularization driver."""

import os
import tempfile
import unittest
from unittest import mock

from irbridge.tests.conftest import (
    IRBuilder, Program, Constant, FunctionType, I32, I8,
    build_fshl_kernel, build_memset_kernel, build_umul_kernel,
)
from irbridge import (
    AtomicOrdering, ErrorKind, I64, Opcode, RegularizationError, Regularizer,
    find_violations, pointer_to, regularize,
)
from irbridge.passes import erase_unused_declarations


def build_mixed_program():
    """One function exercising every rewrite, plus unrelated declarations."""
    program = Program("mixed")
    build_memset_kernel(program)
    build_fshl_kernel(program, I32, name="rot32")
    build_fshl_kernel(program, I32, name="rot32_again")
    build_fshl_kernel(program, I64, name="rot64")
    build_umul_kernel(program, I8)

    b = IRBuilder(program)
    program.add_function("unused_decl", FunctionType(I32, ()))
    program.add_function("llvm.unused.intrinsic", FunctionType(I32, ()))
    fn = b.function("cas", FunctionType(I32, (pointer_to(I32), I32)), ["p", "x"])
    b.block_in(fn, "entry")
    p, x = fn.args
    pair = b.cmpxchg(p, x, Constant.int(I32, 1), AtomicOrdering.SEQ_CST,
                     AtomicOrdering.ACQUIRE, "pair")
    old = b.extract_value(pair, 0, "old")
    div = b.udiv(old, x, "div", flags=["exact"])
    div.metadata["range"] = (0, 4)
    b.ret(div)
    return program


class TestRegularizer(unittest.TestCase):
    """Test the driver end to end."""

    def test_output_contract(self):
        program = build_mixed_program()
        regularize(program)
        self.assertEqual(find_violations(program), [])

    def test_declarations_and_helpers(self):
        program = build_mixed_program()
        regularizer = Regularizer(program)
        regularizer.run()
        names = set(program.functions)

        self.assertNotIn("unused_decl", names)
        self.assertNotIn("llvm.unused.intrinsic", names)
        for intrinsic in ("llvm.memset.p0i8.i32", "llvm.fshl.i32", "llvm.fshl.i64",
                          "llvm.umul.with.overflow.i8"):
            self.assertNotIn(intrinsic, names)
        for helper in ("spirv.llvm_memset_p0i8_i32", "spirv.llvm_fshl_i32",
                       "spirv.llvm_fshl_i64", "spirv.llvm_umul_with_overflow_i8",
                       "__spirv_AtomicCompareExchange"):
            self.assertIn(helper, names)

        # Both i32 call sites share one helper
        rot32 = program.get_function("rot32").entry.instructions[0]
        rot32_again = program.get_function("rot32_again").entry.instructions[0]
        self.assertIs(rot32.called_function, rot32_again.called_function)

        stats = regularizer.stats()
        self.assertEqual(stats["helpers_created"], 4)
        self.assertEqual(stats["helpers_reused"], 1)
        self.assertEqual(stats["helper_bodies_built"], 4)
        self.assertEqual(stats["calls_redirected"], 5)
        self.assertEqual(stats["cmpxchg_rewritten"], 1)
        self.assertEqual(stats["exact_flags_cleared"], 1)
        self.assertEqual(stats["metadata_stripped"], 1)
        self.assertEqual(stats["instructions_erased"], 2)
        # unused_decl, llvm.unused.intrinsic and the four lowered intrinsics
        self.assertEqual(stats["declarations_erased"], 6)

    def test_cmpxchg_semantics_operands(self):
        program = build_mixed_program()
        regularize(program)
        fn = program.get_function("cas")
        res = fn.entry.instructions[0]
        self.assertEqual(res.name, "cmpxchg.res")
        self.assertEqual(res.args[1:4], [Constant.int(I32, 1), Constant.int(I32, 16),
                                         Constant.int(I32, 2)])
        self.assertEqual([i.opcode for i in fn.entry.instructions],
                         [Opcode.CALL, Opcode.UDIV, Opcode.RET])

    def test_second_run_is_a_no_op(self):
        program = build_mixed_program()
        regularize(program)
        before = {name: len(list(fn.instructions())) for name, fn in program.functions.items()}

        regularizer = Regularizer(program)
        regularizer.run()
        after = {name: len(list(fn.instructions())) for name, fn in program.functions.items()}
        self.assertEqual(after, before)
        self.assertEqual(regularizer.stats()["calls_redirected"], 0)

    def test_pending_erase_with_users_is_fatal(self):
        program = Program()
        fn, call = build_fshl_kernel(program, I32)
        regularizer = Regularizer(program, {"verify": False})
        # A rewrite that wrongly reports a still-used instruction as dead
        regularizer.atomics.rewrite = lambda inst: [call]
        b = IRBuilder(program)
        b.position_before(call)
        b.cmpxchg(constant_pointer(b), fn.args[0], fn.args[1])

        with self.assertRaises(RegularizationError) as ctx:
            regularizer.run()
        self.assertEqual(ctx.exception.kind, ErrorKind.DEAD_REFERENCE)

    def test_erase_unused_declarations(self):
        program = Program()
        build_fshl_kernel(program, I32)
        program.add_function("llvm.dead", FunctionType(I32, ()))
        program.add_function("dead", FunctionType(I32, ()))

        self.assertEqual(erase_unused_declarations(program, intrinsics_only=True), 1)
        self.assertIn("dead", program.functions)
        self.assertEqual(erase_unused_declarations(program), 1)
        self.assertEqual(set(program.functions), {"llvm.fshl.i32", "rot"})


def constant_pointer(b):
    """An i32* made from a constant address at the insertion point."""
    return b.bitcast(Constant.int(I64, 64), pointer_to(I32), "p")


class TestSaveRegularized(unittest.TestCase):
    """Test the debug copy of the regularized program."""

    def test_save_to_path(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "nested", "out.ll")
            program = Program()
            build_fshl_kernel(program, I32)
            regularize(program, save_regularized=True, save_path=path)

            with open(path) as f:
                text = f.read()
            self.assertIn("define i32 @spirv.llvm_fshl_i32", text)
            self.assertNotIn("llvm.fshl.i32(", text)

    def test_default_file_in_temp_dir(self):
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch.object(tempfile, "gettempdir", return_value=tmp):
                program = Program()
                build_fshl_kernel(program, I32)
                regularizer = Regularizer(program, {"save_regularized": True})
                regularizer.run()
            self.assertEqual(regularizer.saved_path, os.path.join(tmp, "regularized.ll"))
            self.assertTrue(os.path.exists(regularizer.saved_path))

    def test_no_save_by_default(self):
        program = Program()
        build_fshl_kernel(program, I32)
        regularizer = Regularizer(program)
        regularizer.run()
        self.assertIsNone(regularizer.saved_path)
