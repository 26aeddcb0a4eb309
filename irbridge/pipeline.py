"""
Regularization Entry Point

Provides regularize_with_config, which runs the regularization pipeline
configured by irbridge/pass_config.json (or another config file).
"""

import json
import os
from typing import Optional

from .ir import Program
from .pass_manager import PassManager
from .passes import RegularizePass, VerifyRegularizedPass

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "pass_config.json")


def build_pipeline(print_after_all: bool = False, print_metrics: bool = False) -> PassManager:
    pm = PassManager(print_after_all=print_after_all, print_metrics=print_metrics)
    pm.add_pass(RegularizePass())          # source IR -> encodable IR
    pm.add_pass(VerifyRegularizedPass())   # output contract check
    return pm


def regularize_with_config(
    program: Program,
    config_path: Optional[str] = None,
    print_after_all: bool = False,
    print_metrics: bool = False,
) -> Program:
    """
    Regularize a program through the configured pass pipeline.

    Args:
        program: The program to regularize (mutated in place)
        config_path: JSON pass config; defaults to irbridge/pass_config.json
        print_after_all: If True, print the program after each pass
        print_metrics: If True, print pass metrics and diagnostics

    Returns:
        The regularized program
    """
    with open(config_path or DEFAULT_CONFIG_PATH) as f:
        config_data = json.load(f)

    pipeline = build_pipeline(print_after_all=print_after_all, print_metrics=print_metrics)
    pipeline.set_config(config_data)
    return pipeline.run(program)
