"""Tests for unsigned-multiply-with-overflow lowering."""

import unittest

from irbridge.tests.conftest import Program, I8, I32, build_umul_kernel
from irbridge import I16, I64, Interpreter, Opcode, VectorType, regularize
from irbridge.passes import HelperFunctionCache, IntrinsicLowering

EDGE_VALUES_8 = [0, 1, 2, 3, 15, 16, 17, 127, 128, 129, 254, 255]


class TestUMulWithOverflowLowering(unittest.TestCase):
    """Test the shape of the synthesized helper."""

    def test_helper_body(self):
        program = Program()
        _, call = build_umul_kernel(program, I32)
        lowering = IntrinsicLowering(program, HelperFunctionCache(program))
        lowering.lower(call)

        helper = call.called_function
        self.assertEqual(helper.name, "spirv.llvm_umul_with_overflow_i32")
        self.assertEqual(helper.entry.name, "entry")
        names = [i.name for i in helper.instructions() if i.name]
        self.assertEqual(names, ["mul", "a.is.zero", "divisor", "div", "div.ne", "overflow",
                                 "agg0", "agg1"])
        mul = helper.entry.instructions[0]
        self.assertEqual(mul.opcode, Opcode.MUL)
        self.assertEqual(mul.flags, set())
        # The only division divides by the guarded divisor
        div = next(i for i in helper.instructions() if i.opcode == Opcode.UDIV)
        self.assertEqual(div.operands[1].name, "divisor")


class TestUMulWithOverflowEquivalence(unittest.TestCase):
    """Overflow is reported exactly when the true product does not fit."""

    def _run_all(self, ty, width, values):
        program = Program()
        build_umul_kernel(program, ty)
        regularize(program)
        interp = Interpreter(program)
        mask = (1 << width) - 1
        for a in values:
            for b in values:
                product, overflow = interp.call("mulo", [a, b])
                self.assertEqual(product, (a * b) & mask, (a, b))
                self.assertEqual(overflow, int(a * b > mask), (a, b))

    def test_i8(self):
        values = sorted(set(EDGE_VALUES_8) | set(range(0, 256, 13)))
        self._run_all(I8, 8, values)
        print("umul.with.overflow i8 test passed!")

    def test_wide_types(self):
        for ty, width in ((I16, 16), (I32, 32), (I64, 64)):
            top = (1 << width) - 1
            values = [0, 1, 2, 3, 1 << (width // 2), (1 << (width // 2)) - 1,
                      1 << (width - 1), top - 1, top]
            self._run_all(ty, width, values)

    def test_zero_multiplicand_never_overflows(self):
        program = Program()
        build_umul_kernel(program, I32)
        regularize(program)
        interp = Interpreter(program)
        for b in (0, 1, 0xFFFFFFFF):
            self.assertEqual(interp.call("mulo", [0, b]), (0, 0))
        # Zero on the right goes through the division path
        self.assertEqual(interp.call("mulo", [0xFFFFFFFF, 0]), (0, 0))

    def test_vector_lanes(self):
        ty = VectorType(I8, 4)
        a = (0, 16, 255, 3)
        b = (200, 16, 2, 85)

        program = Program()
        build_umul_kernel(program, ty)
        before = Interpreter(program).call("mulo", [a, b])
        regularize(program)
        after = Interpreter(program).call("mulo", [a, b])

        self.assertEqual(after, before)
        self.assertEqual(after, ((0, 0, 254, 255), (0, 1, 1, 0)))
