"""
Verify-Regularized Pass

Runs the regularization verifier as a standalone pipeline step, so a program
produced by other passes can be checked before it is encoded.
"""

from ..ir import Program
from ..pass_manager import ModulePass, PassConfig
from ..verify import find_violations, verify_regularized


class VerifyRegularizedPass(ModulePass):
    """Raises a verification error if the program is not encodable.

    Options:
    - fatal: raise on violations (default True); otherwise only report them
    """

    @property
    def name(self) -> str:
        return "verify-regularized"

    def run(self, program: Program, config: PassConfig) -> Program:
        self._init_metrics()

        if not config.enabled:
            return program

        if config.options.get("fatal", True):
            verify_regularized(program)
            problems = []
        else:
            problems = find_violations(program)
            for problem in problems:
                self._add_metric_message(problem)

        if self._metrics:
            self._metrics.custom = {"violations": len(problems)}
        return program
