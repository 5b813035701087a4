"""
Tests for ResourceDescriptor key and path derivation.
"""

import pytest

from asana_cache.entities import ResourceDescriptor, ResourceKind
from asana_cache.exceptions import InvalidResourceError


def test_project_tasks_key_and_path():
    d = ResourceDescriptor.project_tasks("123")
    assert d.key == "proj:123:tasks"
    assert d.path == "/projects/123/tasks"
    assert d.paginated is True


def test_task_is_not_paginated():
    d = ResourceDescriptor.task("77")
    assert d.key == "task:77"
    assert d.path == "/tasks/77"
    assert d.paginated is False


def test_projects_and_sections():
    assert ResourceDescriptor.projects().key == "projects"
    assert ResourceDescriptor.project_sections("5").key == "proj:5:sections"
    assert ResourceDescriptor.project_sections("5").path == "/projects/5/sections"


def test_params_are_order_independent():
    a = ResourceDescriptor.create(ResourceKind.PROJECTS, params={"opt_fields": "name", "archived": "false"})
    b = ResourceDescriptor.create(ResourceKind.PROJECTS, params={"archived": "false", "opt_fields": "name"})
    assert a == b
    assert a.key == b.key == "projects?archived=false&opt_fields=name"


def test_empty_params_ignored():
    d = ResourceDescriptor.project_tasks("1", opt_fields=None)
    assert d.key == "proj:1:tasks"
    assert d.query == {}


def test_kind_from_string():
    assert ResourceDescriptor.create("task", "1").kind is ResourceKind.TASK


@pytest.mark.parametrize(
    "kind, resource_id",
    [
        ("task", None),
        ("task", ""),
        ("project_tasks", "../etc"),
        ("projects", "123"),
        ("workspaces", "1"),
    ],
)
def test_invalid_descriptors(kind, resource_id):
    with pytest.raises(InvalidResourceError):
        ResourceDescriptor.create(kind, resource_id)
