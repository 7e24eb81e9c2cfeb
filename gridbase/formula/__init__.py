from gridbase.formula.engine import FormulaEngine, FormulaResult, FormulaValidation, formula_engine
from gridbase.formula.parser import FormulaParser

__all__ = [
    "FormulaEngine",
    "FormulaParser",
    "FormulaResult",
    "FormulaValidation",
    "formula_engine",
]
