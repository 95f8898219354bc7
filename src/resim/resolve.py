"""Resolve human-friendly entity names to their IDs by paging list endpoints."""

from __future__ import annotations

from typing import Callable, Iterator
import uuid

from .client import ReSimClient, ReSimError

PAGE_SIZE = 100


def _key(name: str) -> Callable[[dict], object]:
    return lambda payload: payload.get(name)


def iter_pages(list_call: Callable[..., dict], items_of: Callable[[dict], list | None]) -> Iterator[list]:
    """Yield each page's items in server order, fetching lazily.

    A page is only requested once the caller asks for it, so breaking out of
    the loop never costs an extra request.
    """
    page_token = None
    while True:
        page = list_call(page_size=PAGE_SIZE, page_token=page_token)
        items = items_of(page)
        if items is None:
            raise ReSimError("INVALID_RESPONSE", "list response contained no entries", 0)
        yield items
        page_token = page.get("nextPageToken")
        if not page_token:
            return


def list_all(list_call: Callable[..., dict], key: str) -> list:
    results = []
    for items in iter_pages(list_call, _key(key)):
        results.extend(items)
    return results


def find_id(
    list_call: Callable[..., dict],
    name: str,
    *,
    items_of: Callable[[dict], list | None],
    name_of: Callable[[dict], str | None],
    id_of: Callable[[dict], str | None],
) -> str | None:
    """Return the ID of the first entity named exactly ``name``, or None."""
    for items in iter_pages(list_call, items_of):
        for item in items:
            if name_of(item) == name:
                entity_id = id_of(item)
                if not entity_id:
                    raise ReSimError("INVALID_RESPONSE", f"entity {name!r} has an empty ID", 0)
                return entity_id
    return None


def find_id_by_name(
    list_call: Callable[..., dict],
    name: str,
    *,
    entity: str,
    items_of: Callable[[dict], list | None],
    name_of: Callable[[dict], str | None],
    id_of: Callable[[dict], str | None],
) -> str:
    return _required(entity, name, find_id(list_call, name, items_of=items_of, name_of=name_of, id_of=id_of))


def _as_uuid(identifier: str) -> str | None:
    try:
        return str(uuid.UUID(identifier))
    except ValueError:
        return None


def _check(
    identifier: str,
    exists: Callable[[str], bool],
    list_call: Callable[..., dict],
    *,
    items_key: str,
    id_key: str,
    name_key: str = "name",
) -> str | None:
    # Names may themselves look like UUIDs, so an unconfirmed UUID falls
    # through to the name search.
    candidate = _as_uuid(identifier)
    if candidate is not None and exists(candidate):
        return candidate
    return find_id(
        list_call,
        identifier,
        items_of=_key(items_key),
        name_of=_key(name_key),
        id_of=_key(id_key),
    )


def _required(entity: str, identifier: str, entity_id: str | None) -> str:
    if entity_id is None:
        raise ReSimError("NOT_FOUND", f"failed to find {entity} with requested name: {identifier}", 0)
    return entity_id


def check_project_id(client: ReSimClient, identifier: str) -> str | None:
    return _check(
        identifier,
        client.project_exists,
        client.list_projects,
        items_key="projects",
        id_key="projectID",
    )


def resolve_project_id(client: ReSimClient, identifier: str) -> str:
    return _required("project", identifier, check_project_id(client, identifier))


def check_branch_id(client: ReSimClient, project_id: str, identifier: str) -> str | None:
    return _check(
        identifier,
        lambda branch_id: client.branch_exists(project_id, branch_id),
        lambda **kw: client.list_branches(project_id, **kw),
        items_key="branches",
        id_key="branchID",
    )


def resolve_branch_id(client: ReSimClient, project_id: str, identifier: str) -> str:
    return _required("branch", identifier, check_branch_id(client, project_id, identifier))


def resolve_system_id(client: ReSimClient, project_id: str, identifier: str) -> str:
    system_id = _check(
        identifier,
        lambda system_id: client.system_exists(project_id, system_id),
        lambda **kw: client.list_systems(project_id, **kw),
        items_key="systems",
        id_key="systemID",
    )
    return _required("system", identifier, system_id)


def resolve_test_suite_id(client: ReSimClient, project_id: str, identifier: str) -> str:
    test_suite_id = _check(
        identifier,
        lambda test_suite_id: client.test_suite_exists(project_id, test_suite_id),
        lambda **kw: client.list_test_suites(project_id, **kw),
        items_key="testSuites",
        id_key="testSuiteID",
    )
    return _required("test suite", identifier, test_suite_id)


def resolve_batch_id(client: ReSimClient, project_id: str, name: str) -> str:
    """Batches are looked up by friendly name only."""
    return find_id_by_name(
        lambda **kw: client.list_batches(project_id, **kw),
        name,
        entity="batch",
        items_of=_key("batches"),
        name_of=_key("friendlyName"),
        id_of=_key("batchID"),
    )
