"""
Enrichment - resolves the id references of fetched appointments into
display-ready nested objects.

The appointment list only carries client, barber and service ids (sometimes
with partial nested objects). Enrichment is split in two:

    ReferenceLoader.load()   network: fetch each distinct user once and the
                             service catalog once
    merge_references()       pure: attach client/barber/haircut to every
                             appointment

An id that cannot be resolved gets a placeholder carrying only the id; names
are never invented.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable

from .clients.haircuts import HaircutsClient
from .clients.users import UsersClient
from .core.errors import ApiError, PreconditionError
from .models import Appointment, Haircut, PersonRef, ServiceRef, User

logger = logging.getLogger(__name__)


@dataclass
class ReferenceData:
    users: dict[int, User] = field(default_factory=dict)
    haircuts: dict[int, Haircut] = field(default_factory=dict)


def collect_reference_ids(appointments: Iterable[Appointment]) -> tuple[set[int], set[int]]:
    """Distinct (user ids, service ids) referenced by ``appointments``."""
    user_ids: set[int] = set()
    haircut_ids: set[int] = set()
    for appointment in appointments:
        user_ids.add(appointment.client_id)
        user_ids.add(appointment.barber_id)
        haircut_ids.add(appointment.haircut_id)
    return user_ids, haircut_ids


def _person(user_id: int, references: ReferenceData, partial: PersonRef | None) -> PersonRef:
    user = references.users.get(user_id)
    if user is not None:
        return PersonRef.from_user(user)
    if partial is not None and partial.id == user_id:
        return partial
    return PersonRef(id=user_id)


def _service(haircut_id: int, references: ReferenceData, partial: ServiceRef | None) -> ServiceRef:
    haircut = references.haircuts.get(haircut_id)
    if haircut is not None:
        return ServiceRef.from_haircut(haircut)
    if partial is not None and partial.id == haircut_id:
        return partial
    return ServiceRef(id=haircut_id)


def merge_references(
    appointments: Iterable[Appointment],
    references: ReferenceData,
) -> list[Appointment]:
    """
    Attach resolved client, barber and haircut objects.

    Pure and idempotent: returns new appointments, never mutates its input,
    and enriching an enriched list with the same references changes nothing.
    """
    return [
        appointment.model_copy(
            update={
                "client": _person(appointment.client_id, references, appointment.client),
                "barber": _person(appointment.barber_id, references, appointment.barber),
                "haircut": _service(appointment.haircut_id, references, appointment.haircut),
            }
        )
        for appointment in appointments
    ]


class ReferenceLoader:
    """Batch fetch by id set."""

    def __init__(self, users: UsersClient, haircuts: HaircutsClient):
        self.users = users
        self.haircuts = haircuts

    async def _fetch_user(self, user_id: int) -> User | None:
        try:
            return await self.users.get_user(user_id)
        except (ApiError, PreconditionError) as e:
            logger.warning(f"Could not resolve user {user_id}: {e.message}")
            return None

    async def _fetch_haircuts(self) -> list[Haircut]:
        try:
            return await self.haircuts.list_haircuts()
        except (ApiError, PreconditionError) as e:
            logger.warning(f"Could not load service catalog: {e.message}")
            return []

    async def load(self, user_ids: Iterable[int], haircut_ids: Iterable[int]) -> ReferenceData:
        wanted_users = sorted(set(user_ids))
        wanted_haircuts = set(haircut_ids)

        results = await asyncio.gather(
            self._fetch_haircuts() if wanted_haircuts else asyncio.sleep(0, result=[]),
            *(self._fetch_user(user_id) for user_id in wanted_users),
        )
        catalog, users = results[0], results[1:]

        references = ReferenceData(
            users={user.id: user for user in users if user is not None},
            haircuts={haircut.id: haircut for haircut in catalog if haircut.id in wanted_haircuts},
        )
        missing_users = set(wanted_users) - set(references.users)
        missing_haircuts = wanted_haircuts - set(references.haircuts)
        if missing_users or missing_haircuts:
            logger.warning(
                f"Using placeholders for users {sorted(missing_users)} "
                f"and services {sorted(missing_haircuts)}"
            )
        return references


class EnrichmentService:
    def __init__(self, loader: ReferenceLoader):
        self.loader = loader

    async def enrich(self, appointments: list[Appointment]) -> list[Appointment]:
        if not appointments:
            return []
        user_ids, haircut_ids = collect_reference_ids(appointments)
        references = await self.loader.load(user_ids, haircut_ids)
        return merge_references(appointments, references)
