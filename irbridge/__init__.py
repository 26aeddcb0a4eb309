"""
IR Regularizer for a Portable Target IR

Rewrites a general-purpose SSA program ("source IR") so that it only uses
constructs a restricted target IR can encode:
- Unsupported intrinsics become calls to synthesized helper functions
- cmpxchg becomes an atomic builtin call plus an explicit comparison
- Cast function pointers passed to builtins are stripped
- Optimizer-only flags and metadata are removed

Pipeline: Program -> RegularizePass -> VerifyRegularizedPass -> encoder
"""

# Types
from .types import (
    VoidType,
    IntType,
    PointerType,
    VectorType,
    StructType,
    FunctionType,
    VOID,
    I1,
    I8,
    I16,
    I32,
    I64,
    pointer_to,
    is_function_pointer,
    mangle_type,
)

# Program graph
from .ir import (
    Opcode,
    AtomicOrdering,
    Constant,
    Argument,
    Instruction,
    Block,
    Function,
    Program,
    struct_of,
    void_function_type,
)

# Builder
from .ir_builder import IRBuilder

# Use-def chain infrastructure
from .use_def import UseDefContext, UseLocation

# Errors
from .errors import ErrorKind, RegularizationError

# Builtin names
from .builtins import builtin_opcode, decorate_builtin, helper_name

# Pass infrastructure
from .pass_manager import (
    PassConfig,
    PassMetrics,
    CompilerPass,
    ModulePass,
    PassManager,
    count_instructions,
)

# Regularization
from .passes import Regularizer, RegularizePass, VerifyRegularizedPass, regularize
from .verify import verify_regularized, find_violations

# Main entry point
from .pipeline import regularize_with_config, build_pipeline

# Printing utilities
from .printing import format_program, print_program, save_program

# Reference interpreter
from .interpreter import Interpreter, InterpreterError


__all__ = [
    # Types
    'VoidType', 'IntType', 'PointerType', 'VectorType', 'StructType', 'FunctionType',
    'VOID', 'I1', 'I8', 'I16', 'I32', 'I64',
    'pointer_to', 'is_function_pointer', 'mangle_type',
    # Program graph
    'Opcode', 'AtomicOrdering', 'Constant', 'Argument', 'Instruction', 'Block',
    'Function', 'Program', 'struct_of', 'void_function_type',
    # Builder
    'IRBuilder',
    # Use-def chain infrastructure
    'UseDefContext', 'UseLocation',
    # Errors
    'ErrorKind', 'RegularizationError',
    # Builtin names
    'builtin_opcode', 'decorate_builtin', 'helper_name',
    # Pass infrastructure
    'PassConfig', 'PassMetrics', 'CompilerPass', 'ModulePass', 'PassManager',
    'count_instructions',
    # Regularization
    'Regularizer', 'RegularizePass', 'VerifyRegularizedPass', 'regularize',
    'verify_regularized', 'find_violations',
    # Entry point
    'regularize_with_config', 'build_pipeline',
    # Printing
    'format_program', 'print_program', 'save_program',
    # Interpreter
    'Interpreter', 'InterpreterError',
]
