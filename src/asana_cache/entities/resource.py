"""Resource descriptor for upstream requests."""

from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlencode

from asana_cache.exceptions import InvalidResourceError


class ResourceKind(str, Enum):
    """Asana resources the dashboard reads."""

    PROJECTS = "projects"
    PROJECT_TASKS = "project_tasks"
    PROJECT_SECTIONS = "sections"
    TASK = "task"


# kind -> (key template, API path template, paginated)
_ROUTES: dict[ResourceKind, tuple[str, str, bool]] = {
    ResourceKind.PROJECTS: ("projects", "/projects", True),
    ResourceKind.PROJECT_TASKS: ("proj:{id}:tasks", "/projects/{id}/tasks", True),
    ResourceKind.PROJECT_SECTIONS: ("proj:{id}:sections", "/projects/{id}/sections", True),
    ResourceKind.TASK: ("task:{id}", "/tasks/{id}", False),
}


@dataclass(frozen=True)
class ResourceDescriptor:
    """Identifies one logical upstream request.

    Two descriptors with the same kind, id and params always produce the
    same cache key, whatever order the params were given in.

    Example:
        ```python
        d = ResourceDescriptor.project_tasks("123")
        d.key   # "proj:123:tasks"
        d.path  # "/projects/123/tasks"
        ```
    """

    kind: ResourceKind
    resource_id: str | None = None
    params: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.kind is ResourceKind.PROJECTS:
            if self.resource_id is not None:
                raise InvalidResourceError("projects does not take a resource id")
        elif not self.resource_id or not self.resource_id.isdigit():
            raise InvalidResourceError(f"Invalid Asana gid for {self.kind.value}: {self.resource_id!r}")

        # Normalize params so equal requests compare (and hash) equal
        object.__setattr__(self, "params", tuple(sorted(self.params)))

    @classmethod
    def create(
        cls,
        kind: ResourceKind | str,
        resource_id: str | None = None,
        params: dict[str, str] | None = None,
    ) -> "ResourceDescriptor":
        try:
            kind = ResourceKind(kind)
        except ValueError as e:
            raise InvalidResourceError(f"Unknown resource kind: {kind!r}") from e
        clean = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
        return cls(kind=kind, resource_id=resource_id, params=tuple(clean.items()))

    @classmethod
    def projects(cls, **params: str) -> "ResourceDescriptor":
        return cls.create(ResourceKind.PROJECTS, params=params)

    @classmethod
    def project_tasks(cls, project_gid: str, **params: str) -> "ResourceDescriptor":
        return cls.create(ResourceKind.PROJECT_TASKS, project_gid, params)

    @classmethod
    def project_sections(cls, project_gid: str, **params: str) -> "ResourceDescriptor":
        return cls.create(ResourceKind.PROJECT_SECTIONS, project_gid, params)

    @classmethod
    def task(cls, task_gid: str, **params: str) -> "ResourceDescriptor":
        return cls.create(ResourceKind.TASK, task_gid, params)

    @property
    def key(self) -> str:
        base = _ROUTES[self.kind][0].format(id=self.resource_id)
        if self.params:
            return f"{base}?{urlencode(self.params)}"
        return base

    @property
    def path(self) -> str:
        return _ROUTES[self.kind][1].format(id=self.resource_id)

    @property
    def paginated(self) -> bool:
        return _ROUTES[self.kind][2]

    @property
    def query(self) -> dict[str, str]:
        return dict(self.params)
