"""
Pass Manager Infrastructure

Provides the framework for running passes over a Program, with JSON-driven
per-pass configuration and optional metrics / IR dumps after each pass.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Any
import json

from .ir import Program


@dataclass
class PassConfig:
    """Configuration for a single pass."""
    name: str
    enabled: bool = True
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class PassMetrics:
    """Metrics collected by a pass during execution."""
    ir_size_before: int = 0
    ir_size_after: int = 0
    functions_before: int = 0
    functions_after: int = 0
    custom: dict[str, Any] = field(default_factory=dict)
    messages: list[str] = field(default_factory=list)


def count_instructions(program: Program) -> int:
    """Count total instructions across all function bodies."""
    return sum(len(block.instructions)
               for fn in program.functions.values()
               for block in fn.blocks)


class CompilerPass(ABC):
    """Base class for all passes over a Program."""

    def __init__(self):
        self._metrics: Optional[PassMetrics] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the pass name for config matching."""
        pass

    @abstractmethod
    def run(self, program: Program, config: PassConfig) -> Program:
        """Transform the program (in place) and return it."""
        pass

    def get_metrics(self) -> Optional[PassMetrics]:
        """Return metrics from the last run, if collected."""
        return self._metrics

    def _init_metrics(self):
        """Initialize metrics for a new run."""
        self._metrics = PassMetrics()

    def _add_metric_message(self, msg: str):
        """Add a diagnostic message to metrics."""
        if self._metrics:
            self._metrics.messages.append(msg)


# Alias for clarity
ModulePass = CompilerPass


@dataclass
class PassManager:
    """Manages and runs passes over a Program."""
    passes: list[CompilerPass] = field(default_factory=list)
    config: dict[str, PassConfig] = field(default_factory=dict)
    print_after_all: bool = False
    print_metrics: bool = False

    def add_pass(self, p: CompilerPass) -> None:
        """Register a pass."""
        self.passes.append(p)

    def set_config(self, data: dict) -> None:
        """Load pass configs from an already parsed config mapping."""
        for pass_name, opts in data.get("passes", {}).items():
            self.config[pass_name] = PassConfig(
                name=pass_name,
                enabled=opts.get("enabled", True),
                options=opts.get("options", {})
            )

    def load_config(self, config_path: str) -> None:
        """Load pass configs from JSON file."""
        with open(config_path) as f:
            data = json.load(f)
        self.set_config(data)

    def _print_pass_metrics(self, p: CompilerPass, cfg: PassConfig, before_size: int,
                            before_functions: int, program: Program):
        """Print metrics for a pass execution."""
        after_size = count_instructions(program)
        after_functions = len(program.functions)

        print(f"\n=== Pass: {p.name} ===")
        print(f"Config: {', '.join(f'{k}={v}' for k, v in cfg.options.items()) or '(default)'}")

        # IR size change
        if before_size > 0:
            pct = ((after_size - before_size) / before_size) * 100
            print(f"IR size: {before_size} -> {after_size} instructions ({pct:+.0f}%)")
        else:
            print(f"IR size: {before_size} -> {after_size} instructions")

        print(f"Functions: {before_functions} -> {after_functions}")

        # Pass-specific metrics
        metrics = p.get_metrics()
        if metrics:
            if metrics.custom:
                print(f"Custom metrics: {metrics.custom}")
            if metrics.messages:
                print("Diagnostics:")
                for msg in metrics.messages:
                    print(f"  - {msg}")

    def run(self, program: Program) -> Program:
        """Run all enabled passes in order."""
        from .printing import print_program

        if self.print_after_all:
            print("=== Program (before passes) ===")
            print_program(program)

        for p in self.passes:
            cfg = self.config.get(p.name, PassConfig(name=p.name))
            if not cfg.enabled:
                if self.print_metrics:
                    print(f"\n=== Pass: {p.name} === (SKIPPED - disabled)")
                continue

            # Collect before metrics (passes mutate in place)
            before_size = count_instructions(program)
            before_functions = len(program.functions)

            program = p.run(program, cfg)

            metrics = p.get_metrics()
            if metrics:
                metrics.ir_size_before = before_size
                metrics.ir_size_after = count_instructions(program)
                metrics.functions_before = before_functions
                metrics.functions_after = len(program.functions)

            # Print metrics
            if self.print_metrics:
                self._print_pass_metrics(p, cfg, before_size, before_functions, program)

            if self.print_after_all:
                print(f"=== Program (after {p.name}) ===")
                print_program(program)

        return program
