# Central models file - import every table model here so metadata.create_all sees them

from gridbase.adapters.sql.models import (  # noqa: F401
    ColumnRecord,
    FileReferenceRecord,
    RelationRecord,
    RowRecord,
    SelectOptionRecord,
    TableRecord,
    ViewRecord,
)
