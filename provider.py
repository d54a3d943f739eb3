"""
Composition resource provider.

Sits between the HTTP routes and the versioned store: parses raw ids coming
off the URL, checks request bodies and dispatches read/vread.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from errors import InvalidRequestError, ResourceNotFoundError, UnprocessableEntityError
from store import VersionedResourceStore

logger = logging.getLogger(__name__)

NUMERIC_ID = re.compile(r"[+-]?[0-9]+")


def parse_id_part(id_part: str) -> Optional[int]:
    """Parse the numeric part of a resource id, None if it is not a number"""
    # ASCII digits only: int() would also take " 1", "0_1" and other Unicode digits
    if not isinstance(id_part, str) or not NUMERIC_ID.fullmatch(id_part):
        return None
    return int(id_part)


class CompositionResourceProvider:
    """Serves Composition resources out of a VersionedResourceStore"""

    resource_type = "Composition"

    def __init__(self, store: Optional[VersionedResourceStore] = None):
        self.store = store if store is not None else VersionedResourceStore(self.resource_type)

    def _require_id(self, id_part: str) -> int:
        # An id we cannot parse cannot name a stored resource
        resource_id = parse_id_part(id_part)
        if resource_id is None:
            raise ResourceNotFoundError(
                f"{self.resource_type}/{id_part} not found",
                resource_id=id_part
            )
        return resource_id

    def _check_body(self, resource: Any):
        if not isinstance(resource, dict):
            raise UnprocessableEntityError("Request body must be a JSON object")

        resource_type = resource.get("resourceType")
        if resource_type != self.resource_type:
            raise UnprocessableEntityError(
                f"Incorrect resource type {resource_type!r}, expected {self.resource_type}"
            )

        if not resource.get("identifier"):
            raise UnprocessableEntityError("No identifier supplied")

    def read(self, id_part: str, version_id: Optional[str] = None) -> Dict:
        """Read the latest version, or a specific one when version_id is given"""
        resource_id = self._require_id(id_part)
        if version_id is None:
            return self.store.read_latest(resource_id)
        return self.store.read_version(resource_id, version_id)

    def search(self) -> List[Dict]:
        """Every stored Composition at its latest version. No criteria are applied."""
        return self.store.search_all()

    def history(self, id_part: str) -> List[Dict]:
        return self.store.history(self._require_id(id_part))

    def create(self, resource: Any) -> Dict:
        self._check_body(resource)
        created = self.store.create(resource)
        logger.info(f"Created {self.resource_type}/{created['id']}")
        return created

    def update(self, id_part: str, resource: Any) -> Dict:
        resource_id = parse_id_part(id_part)
        if resource_id is None:
            raise InvalidRequestError(
                f"Invalid ID {id_part} - Must be numeric",
                resource_id=id_part
            )

        self._check_body(resource)

        body_id = resource.get("id")
        if body_id is not None and str(body_id) != str(resource_id):
            raise InvalidRequestError(
                f"Resource id {body_id} does not match URL id {resource_id}",
                resource_id=id_part
            )

        updated = self.store.update(resource_id, resource)
        logger.info(f"Updated {self.resource_type}/{resource_id} to version {updated['meta']['versionId']}")
        return updated
