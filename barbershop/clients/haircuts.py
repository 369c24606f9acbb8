"""
Haircuts resource: the public service catalog.
"""

from ..core.http import ApiClient
from ..models import Haircut


class HaircutsClient:
    def __init__(self, api: ApiClient):
        self.api = api

    async def list_haircuts(self, active_only: bool = False) -> list[Haircut]:
        data = await self.api.request(
            "GET", "/haircuts", fallback_message="Error al obtener servicios de corte"
        )
        haircuts = [Haircut.model_validate(item) for item in data or []]
        if active_only:
            haircuts = [haircut for haircut in haircuts if haircut.is_active]
        return haircuts
