"""
In-memory versioned resource store.

Maps a numeric resource id to every version of that resource, oldest first.
Nothing is persisted; a fresh store holds only the seeded example Composition.
"""

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from errors import ResourceNotFoundError

logger = logging.getLogger(__name__)

SEED_IDENTIFIER_SYSTEM = "urn:hapitest:mrns"
SEED_IDENTIFIER_VALUE = "00002"
SEED_TITLE = "A Generic Diagonistic Explanatory Document"


def fhir_instant(dt: Optional[datetime] = None, timespec: str = 'milliseconds') -> str:
    """Format a UTC datetime as a FHIR instant ending in Z"""
    dt = dt or datetime.now(timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec=timespec).replace('+00:00', 'Z')


def create_example_composition() -> Dict:
    """The demonstration record every new store starts with"""
    return {
        "resourceType": "Composition",
        "identifier": {
            "system": SEED_IDENTIFIER_SYSTEM,
            "value": SEED_IDENTIFIER_VALUE
        },
        "title": SEED_TITLE,
        "date": fhir_instant(timespec='seconds')
    }


class VersionedResourceStore:
    """
    Holds the version history of every resource of one type.

    Histories are lists ordered oldest-first, so the current version is always
    the last element. Stored records are never mutated: updates append a new
    version and callers only ever receive copies.
    """

    def __init__(self, resource_type: str = "Composition", seed: bool = True):
        self.resource_type = resource_type
        self._histories: Dict[int, List[Dict]] = {}
        self._next_id = 1
        self._lock = threading.Lock()

        if seed:
            self._initialize()

    def _initialize(self):
        record = self.create(create_example_composition())
        logger.info(f"Seeded {self.resource_type}/{record['id']}")

    def _stamp(self, resource: Dict, resource_id: int, version_id: str) -> Dict:
        record = copy.deepcopy(resource)
        record["resourceType"] = self.resource_type
        record["id"] = str(resource_id)
        record["meta"] = {
            "versionId": version_id,
            "lastUpdated": fhir_instant()
        }
        return record

    def _get_history(self, resource_id: int) -> List[Dict]:
        history = self._histories.get(resource_id)
        if not history:
            raise ResourceNotFoundError(
                f"Unknown resource: {self.resource_type}/{resource_id}",
                resource_id=str(resource_id)
            )
        return history

    def __len__(self) -> int:
        with self._lock:
            return len(self._histories)

    def __contains__(self, resource_id: int) -> bool:
        with self._lock:
            return resource_id in self._histories

    def read_latest(self, resource_id: int) -> Dict:
        """Return the current version of a resource"""
        with self._lock:
            return copy.deepcopy(self._get_history(resource_id)[-1])

    def read_version(self, resource_id: int, version_id: str) -> Dict:
        """Return a specific version of a resource"""
        with self._lock:
            history = self._get_history(resource_id)
            for record in history:
                if record["meta"]["versionId"] == version_id:
                    return copy.deepcopy(record)

        raise ResourceNotFoundError(
            f"Unknown version: {self.resource_type}/{resource_id}/_history/{version_id}",
            resource_id=str(resource_id),
            version_id=version_id
        )

    def search_all(self) -> List[Dict]:
        """Return the current version of every stored resource"""
        with self._lock:
            return [copy.deepcopy(history[-1]) for history in self._histories.values()]

    def history(self, resource_id: int) -> List[Dict]:
        """Return every version of a resource, newest first"""
        with self._lock:
            return [copy.deepcopy(record) for record in reversed(self._get_history(resource_id))]

    def create(self, resource: Dict) -> Dict:
        """Store a new resource under the next free id"""
        with self._lock:
            resource_id = self._next_id
            self._next_id += 1
            record = self._stamp(resource, resource_id, "1")
            self._histories[resource_id] = [record]

        logger.debug(f"Created {self.resource_type}/{resource_id}")
        return copy.deepcopy(record)

    def update(self, resource_id: int, resource: Dict) -> Dict:
        """Append a new version to an existing resource"""
        with self._lock:
            history = self._get_history(resource_id)
            record = self._stamp(resource, resource_id, str(len(history) + 1))
            history.append(record)

        logger.debug(f"Updated {self.resource_type}/{resource_id} to version {record['meta']['versionId']}")
        return copy.deepcopy(record)
