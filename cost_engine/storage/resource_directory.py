"""
Resource directory: read access to discovered resource descriptors.

Discovery itself happens elsewhere; the engine only needs to enumerate jobs and
their resources. Any object with the same three methods can be injected.
"""
import threading
from typing import Dict, Iterable, List, Optional

from cost_engine.domain.resource_models import ResourceDescriptor


class ResourceNotFoundError(KeyError):
    """Raised when a (job, resource) pair is unknown."""
    pass


class InMemoryResourceDirectory:
    """Thread-safe in-process directory, populated by the discovery collaborator."""

    def __init__(self, descriptors: Optional[Iterable[ResourceDescriptor]] = None):
        self._lock = threading.Lock()
        self._jobs: Dict[str, Dict[str, ResourceDescriptor]] = {}
        for descriptor in descriptors or []:
            self.upsert(descriptor)

    def upsert(self, descriptor: ResourceDescriptor) -> None:
        with self._lock:
            self._jobs.setdefault(descriptor.job_id, {})[descriptor.resource_id] = descriptor

    def list_jobs(self) -> List[str]:
        with self._lock:
            return sorted(self._jobs)

    def list_resources(self, job_id: str) -> List[ResourceDescriptor]:
        with self._lock:
            resources = self._jobs.get(job_id, {})
            return [resources[key] for key in sorted(resources)]

    def get_resource(self, job_id: str, resource_id: str) -> ResourceDescriptor:
        with self._lock:
            descriptor = self._jobs.get(job_id, {}).get(resource_id)
        if descriptor is None:
            raise ResourceNotFoundError(f"Resource {resource_id} not found in job {job_id}")
        return descriptor
