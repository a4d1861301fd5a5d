"""
Console snapshots of the Knative services in a namespace.

Printed before and after a migration so the operator can compare the
destination namespace with the source.
"""

from __future__ import annotations

from .client import KnativeClient
from .models import (
    generation_of,
    latest_created_revision,
    latest_ready_revision,
    name_of,
    ready_status,
    service_url,
)

__all__ = ["print_services_with_revisions"]


def print_services_with_revisions(client: KnativeClient, label: str) -> None:
    """Print every service in *client*'s namespace with its revisions."""
    services = client.list_services()
    print(
        f"There are {len(services)} service(s) in {label} namespace "
        f"{client.namespace}"
    )
    for service in services:
        name = name_of(service)
        print(f"|- Service: {name}")
        print(f"|    URL:             {service_url(service) or '-'}")
        print(f"|    Ready:           {ready_status(service)}")
        print(f"|    Latest created:  {latest_created_revision(service) or '-'}")
        print(f"|    Latest ready:    {latest_ready_revision(service) or '-'}")
        revisions = client.list_revisions_by_service(name)
        for revision in revisions:
            print(
                f"|    |- Revision: {name_of(revision):<40s} "
                f"generation: {generation_of(revision) or '-':<4s} "
                f"ready: {ready_status(revision)}"
            )
    print()
