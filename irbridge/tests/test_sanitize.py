"""Tests for flag and metadata stripping."""

import unittest

from irbridge.tests.conftest import IRBuilder, Program, Constant, FunctionType, I32
from irbridge import Opcode, regularize
from irbridge.passes import clear_exact, clear_nounwind, clear_tail_call, strip_metadata


def build_annotated(program):
    """A function whose instructions carry flags, metadata and call markers."""
    b = IRBuilder(program)
    helper = b.function("helper", FunctionType(I32, (I32,)))
    smax = b.function("llvm.smax.i32", FunctionType(I32, (I32, I32)))
    fn = b.function("f", FunctionType(I32, (I32, I32)), ["x", "y"])
    b.block_in(fn, "entry")
    x, y = fn.args
    div = b.udiv(x, y, "div", flags=["exact"])
    shr = b.ashr(div, Constant.int(I32, 1), "shr", flags=["exact"])
    add = b.binop(Opcode.ADD, shr, y, "add", flags=["nuw", "nsw"])
    add.metadata.update({"range": (0, 10), "dbg": "loc"})
    call = b.call(helper, [add], "c", tail=True, attrs=["nounwind"])
    call.metadata["tbaa"] = "int"
    smax_call = b.call(smax, [call, x], "m", tail=True, attrs=["nounwind"])
    smax_call.metadata["fpmath"] = 2.5
    b.ret(smax_call)
    return fn, div, shr, add, call, smax_call


class TestSanitizeHelpers(unittest.TestCase):
    """Test the individual stripping helpers."""

    def test_helpers_report_changes(self):
        program = Program()
        _, div, _, add, call, _ = build_annotated(program)

        self.assertTrue(clear_exact(div))
        self.assertFalse(clear_exact(div))
        # add cannot be exact; its flags are left alone
        self.assertFalse(clear_exact(add))
        self.assertEqual(add.flags, {"nuw", "nsw"})

        self.assertTrue(clear_tail_call(call))
        self.assertFalse(clear_tail_call(call))
        self.assertTrue(clear_nounwind(call))
        self.assertFalse(clear_nounwind(call))

        self.assertEqual(strip_metadata(add), 1)
        self.assertEqual(add.metadata, {"dbg": "loc"})
        self.assertEqual(strip_metadata(add), 0)


class TestSanitizeInDriver(unittest.TestCase):
    """Test what the driver strips and what it keeps."""

    def test_regularize_strips_unsupported_annotations(self):
        program = Program()
        _, div, shr, add, call, smax_call = build_annotated(program)
        regularize(program)

        self.assertNotIn("exact", div.flags)
        self.assertNotIn("exact", shr.flags)
        self.assertEqual(add.flags, {"nuw", "nsw"})
        self.assertEqual(add.metadata, {"dbg": "loc"})
        self.assertEqual(call.metadata, {})
        self.assertEqual(smax_call.metadata, {})

        # Tail markers go from every call
        self.assertNotIn("tail", call.flags)
        self.assertNotIn("tail", smax_call.flags)
        # nounwind goes from intrinsic calls only
        self.assertIn("nounwind", call.attrs)
        self.assertNotIn("nounwind", smax_call.attrs)
