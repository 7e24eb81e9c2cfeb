import logging
from typing import Callable, Iterable, List, Optional

from gridbase.columns import behavior_for, formula_config, rollup_config
from gridbase.constants import ColumnType
from gridbase.formula import FormulaEngine, formula_engine
from gridbase.rollup import RollupEngine, rollup_engine
from gridbase.schemas import Cells, Column, Row

logger = logging.getLogger(__name__)

RelatedRows = Callable[[str, str], List[Row]]
ColumnLookup = Callable[[str], Optional[Column]]


def has_computed_columns(columns: Iterable[Column]) -> bool:
    return any(behavior_for(column.type).computed for column in columns)


class ComputedValues:
    """Recomputes the formula and rollup cache of a row."""

    def __init__(self, formulas: FormulaEngine = formula_engine, rollups: RollupEngine = rollup_engine):
        self.formulas = formulas
        self.rollups = rollups

    def compute(
        self,
        row: Row,
        columns: List[Column],
        related_rows: RelatedRows,
        get_column: ColumnLookup,
    ) -> Cells:
        """
        Return the fresh computed map for a row.

        Rollups are resolved first so formulas can reference them. Formulas run in
        column order, so a formula may reference any formula to its left.
        """
        ordered = sorted(columns, key=lambda column: column.position)
        working = row.model_copy(update={"computed": {}})

        for column in ordered:
            if column.type != ColumnType.ROLLUP:
                continue
            config = rollup_config(column)
            if config is None:
                working.computed[column.id] = None
                continue
            related = related_rows(row.id, config.relation_column_id)
            working.computed[column.id] = self.rollups.calculate(
                config.aggregation,
                related,
                config.target_column_id,
                get_column(config.target_column_id),
            )

        for column in ordered:
            if column.type != ColumnType.FORMULA:
                continue
            config = formula_config(column)
            if config is None:
                working.computed[column.id] = None
                continue
            result = self.formulas.evaluate_with_result(config.formula, working, ordered)
            if result.error:
                logger.debug("Formula column %s on row %s: %s", column.id, row.id, result.error)
            working.computed[column.id] = result.value

        return working.computed


computed_values = ComputedValues()
