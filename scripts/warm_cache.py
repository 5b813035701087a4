#!/usr/bin/env python3
"""
Warm the cache from Asana.

Refreshes the project list and then every project's tasks, so the first
dashboard load after a deploy (or after the TTL runs out) is served from
cache instead of fanning out to Asana. Meant to be run from cron:

    0 0 */2 * *  cd /srv/asana-cache && python scripts/warm_cache.py
"""

import argparse
import asyncio
import sys

from asana_cache.api.dependencies import build_repository, build_upstream
from asana_cache.config import get_settings
from asana_cache.entities import CacheState, ResourceDescriptor
from asana_cache.exceptions import AuthFailedError, ServiceUnavailableError
from asana_cache.logging_config import configure_logging
from asana_cache.services import CacheService


def print_section(title: str) -> None:
    """Print a section header."""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


async def warm(project_fields: str, task_fields: str, force: bool) -> int:
    """Refresh projects and their tasks. Returns a process exit code."""
    config = get_settings()
    upstream = build_upstream(config)
    cache = CacheService.create(
        repository=build_repository(config),
        upstream=upstream,
        ttl_by_kind=config.ttl_by_kind,
        negative_ttl=config.cache_negative_ttl,
        max_attempts=config.upstream_max_attempts,
    )

    try:
        print_section("Projects")
        try:
            projects = await cache.get(ResourceDescriptor.projects(opt_fields=project_fields), refresh=force)
        except ServiceUnavailableError as e:
            print(f"  ✗ Project list unavailable: {e.message}")
            return 1
        if projects.state is not CacheState.FRESH:
            print(f"  ✗ Project list is {projects.state.value}, skipping tasks")
            return 1
        print(f"  ✓ {len(projects.body)} projects ({projects.source})")

        print_section("Tasks")
        failures = 0
        for project in projects.body:
            descriptor = ResourceDescriptor.project_tasks(project["gid"], opt_fields=task_fields)
            try:
                result = await cache.get(descriptor, refresh=force)
            except ServiceUnavailableError as e:
                failures += 1
                print(f"  ✗ {project.get('name', project['gid'])}: {e.message}")
                continue
            count = len(result.body) if isinstance(result.body, list) else 0
            marker = "✓" if result.state is CacheState.FRESH else "!"
            print(f"  {marker} {project.get('name', project['gid'])}: {count} tasks ({result.state.value})")

        stats = cache.get_stats()
        print_section("Summary")
        print(f"  Entries: {stats['total_entries']}")
        print(f"  Upstream calls: {stats['upstream_calls']}")
        print(f"  Failures: {failures}")
        return 1 if failures else 0
    except AuthFailedError as e:
        print(f"  ✗ {e.message}. Set ASANA_ACCESS_TOKEN.")
        return 2
    finally:
        await upstream.close()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--project-fields", default="name,gid")
    parser.add_argument("--task-fields", default="name,created_at,due_on,completed,completed_at")
    parser.add_argument("--force", action="store_true", help="Refetch even when entries are still fresh")
    args = parser.parse_args()

    configure_logging(get_settings().log_level)
    sys.exit(asyncio.run(warm(args.project_fields, args.task_fields, args.force)))


if __name__ == "__main__":
    main()
