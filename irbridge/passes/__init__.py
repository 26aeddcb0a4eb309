"""
Regularization Passes

Rewrites that turn a source-IR program into one the target-IR encoder can
represent:
- Helper-function cache shared by the lowerings
- Intrinsic lowering (memset, fshl, umul.with.overflow)
- cmpxchg rewriting into the atomic builtin
- Function-pointer builtin lowering
- Flag and metadata sanitizing
- The regularization driver and its verifier pass
"""

from .helpers import HelperFunctionCache, get_or_insert_overload, intrinsic_helper_name
from .intrinsics import IntrinsicLowering, intrinsic_kind
from .memset_expansion import expand_memset_as_loop, common_alignment
from .atomics import CmpXchgRewriter, memory_semantics
from .func_ptr import FunctionPointerLowering
from .sanitize import clear_tail_call, clear_nounwind, clear_exact, strip_metadata
from .regularize import Regularizer, RegularizePass, regularize, erase_unused_declarations
from .verify import VerifyRegularizedPass

__all__ = [
    'HelperFunctionCache',
    'intrinsic_helper_name',
    'get_or_insert_overload',
    'IntrinsicLowering',
    'intrinsic_kind',
    'expand_memset_as_loop',
    'common_alignment',
    'CmpXchgRewriter',
    'memory_semantics',
    'FunctionPointerLowering',
    'clear_tail_call',
    'clear_nounwind',
    'clear_exact',
    'strip_metadata',
    'Regularizer',
    'RegularizePass',
    'regularize',
    'erase_unused_declarations',
    'VerifyRegularizedPass',
]
