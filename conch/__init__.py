# Core type aliases for conch's data model.
#
# Every runtime value is a `Cell` (see conch.types.cell); code is made of the
# same cells, so the aliases below are interchangeable and only document intent.
#
# Naming guidance:
# - SExpression: use in reader code to denote syntactic forms (code-as-data).
# - Value:       use in evaluator/runtime code to denote evaluated values.

from typing import Any, Callable

Value = Any
SExpression = Value

# Applier signature shared by every closure flavor: (task, args) -> more work remains
Applier = Callable[..., bool]

__version__ = "0.1.0"
