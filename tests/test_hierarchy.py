import pytest

from gridbase.errors import NotFoundError
from gridbase.schemas import QueryOptions


@pytest.fixture()
def tree(make_row):
    """
    epic
    ├── story
    │   └── task
    └── chore
    loose
    """
    epic = make_row()
    story = make_row(parent_row_id=epic.id)
    task = make_row(parent_row_id=story.id)
    chore = make_row(parent_row_id=epic.id)
    loose = make_row()
    return {"epic": epic, "story": story, "task": task, "chore": chore, "loose": loose}


def ids(rows):
    return [row.id for row in rows]


def test_children(adapter, tree):
    assert ids(adapter.get_children(tree["epic"].id)) == [tree["story"].id, tree["chore"].id]
    assert adapter.get_children(tree["task"].id) == []


def test_descendants_are_pre_order(adapter, tree):
    assert ids(adapter.get_descendants(tree["epic"].id)) == [tree["story"].id, tree["task"].id, tree["chore"].id]


def test_depth(adapter, tree):
    assert adapter.get_row_depth(tree["epic"].id) == 0
    assert adapter.get_row_depth(tree["story"].id) == 1
    assert adapter.get_row_depth(tree["task"].id) == 2


def test_has_children(adapter, tree):
    assert adapter.has_children(tree["epic"].id)
    assert not adapter.has_children(tree["loose"].id)


def test_archived_children_are_skipped(adapter, tree):
    adapter.archive_row(tree["task"].id)
    assert not adapter.has_children(tree["story"].id)
    assert ids(adapter.get_descendants(tree["epic"].id)) == [tree["story"].id, tree["chore"].id]


def test_missing_row(adapter):
    with pytest.raises(NotFoundError):
        adapter.get_children("missing")
    with pytest.raises(NotFoundError):
        adapter.get_row_depth("missing")


class TestParentQuery:
    def test_no_parent_filter_returns_every_row(self, adapter, table, tree):
        assert adapter.get_rows(table.id).total == 5

    def test_top_level_only(self, adapter, table, tree):
        result = adapter.get_rows(table.id, QueryOptions(parent_row_id=None))
        assert set(ids(result.items)) == {tree["epic"].id, tree["loose"].id}

    def test_top_level_with_sub_items(self, adapter, table, tree):
        result = adapter.get_rows(table.id, QueryOptions(parent_row_id=None, include_sub_items=True))
        assert result.total == 5

    def test_direct_children(self, adapter, table, tree):
        result = adapter.get_rows(table.id, QueryOptions(parent_row_id=tree["epic"].id))
        assert set(ids(result.items)) == {tree["story"].id, tree["chore"].id}
