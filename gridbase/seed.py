"""Demo data for a fresh workspace."""

import logging
from datetime import date, timedelta

from gridbase.adapters.base import DatabaseAdapter
from gridbase.constants import ColumnType, SortDirection, ViewType
from gridbase.schemas import (
    CreateColumnInput,
    CreateRowInput,
    CreateSelectOptionInput,
    CreateTableInput,
    CreateViewInput,
    QuerySort,
    Table,
    ViewConfig,
)

logger = logging.getLogger(__name__)

STATUS_OPTIONS = [("Not started", "gray"), ("In progress", "blue"), ("Done", "green")]
PRIORITY_OPTIONS = [("Low", "gray"), ("Medium", "yellow"), ("High", "red")]


def seed_sample_data(adapter: DatabaseAdapter, workspace_id: str) -> Table:
    """Create a small "Tasks" table with options, rows, a sub-item and a default view."""
    table = adapter.create_table(
        CreateTableInput(workspace_id=workspace_id, name="Tasks", description="Sample task tracker", icon="✅")
    )

    def column(name: str, column_type: ColumnType, **kwargs):
        return adapter.create_column(CreateColumnInput(table_id=table.id, name=name, type=column_type, **kwargs))

    title = column("Name", ColumnType.TEXT, is_primary=True, width=280)
    status = column("Status", ColumnType.SELECT)
    priority = column("Priority", ColumnType.SELECT)
    due = column("Due", ColumnType.DATE, config={"include_time": False})
    done = column("Done", ColumnType.BOOLEAN)
    column("Created", ColumnType.CREATED_TIME)
    column(
        "Summary",
        ColumnType.FORMULA,
        config={"formula": 'if(prop("Done"), "Done: " + prop("Name"), prop("Name"))', "result_type": "text"},
    )

    status_ids = {}
    for name, color in STATUS_OPTIONS:
        option = adapter.create_select_option(CreateSelectOptionInput(column_id=status.id, name=name, color=color))
        status_ids[name] = option.id
    priority_ids = {}
    for name, color in PRIORITY_OPTIONS:
        option = adapter.create_select_option(CreateSelectOptionInput(column_id=priority.id, name=name, color=color))
        priority_ids[name] = option.id

    today = date.today()
    launch = adapter.create_row(
        CreateRowInput(
            table_id=table.id,
            cells={
                title.id: "Plan the launch",
                status.id: status_ids["In progress"],
                priority.id: priority_ids["High"],
                due.id: (today + timedelta(days=7)).isoformat(),
                done.id: False,
            },
        )
    )
    adapter.create_row(
        CreateRowInput(
            table_id=table.id,
            parent_row_id=launch.id,
            cells={
                title.id: "Draft the announcement",
                status.id: status_ids["Not started"],
                priority.id: priority_ids["Medium"],
                done.id: False,
            },
        )
    )
    adapter.create_row(
        CreateRowInput(
            table_id=table.id,
            cells={
                title.id: "Set up the workspace",
                status.id: status_ids["Done"],
                priority.id: priority_ids["Low"],
                due.id: today.isoformat(),
                done.id: True,
            },
        )
    )

    adapter.create_view(
        CreateViewInput(
            table_id=table.id,
            name="All tasks",
            type=ViewType.TABLE,
            config=ViewConfig(sorts=[QuerySort(column_id=due.id, direction=SortDirection.ASC)]),
        )
    )
    logger.info("Seeded sample table %s in workspace %s", table.id, workspace_id)
    return table
