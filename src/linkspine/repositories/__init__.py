"""Record store implementations.

- :class:`InMemoryRepository`: dict-backed fake for tests and dry runs
- :class:`AirtableRepository`: REST adapter over ``httpx``
"""

from linkspine.repositories.airtable import AirtableRepository
from linkspine.repositories.memory import InMemoryRepository

__all__ = ["AirtableRepository", "InMemoryRepository"]
