"""Validators guarding the documentation IR."""

from .base import ValidationContext, Validator, iter_strings, run_validators, tokenize
from .ir_invariants import DEFAULT_IR_VALIDATORS, NoPathTitleValidator, NoRawCodeValidator

__all__ = [
    "DEFAULT_IR_VALIDATORS",
    "NoPathTitleValidator",
    "NoRawCodeValidator",
    "ValidationContext",
    "Validator",
    "iter_strings",
    "run_validators",
    "tokenize",
]
