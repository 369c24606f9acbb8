"""
Resource clients, one per backend resource group.
"""
from .ai import AiClient, HaircutAnalysis
from .appointments import AppointmentDraft, AppointmentsClient, AvailabilityResponse
from .auth import AuthClient
from .haircuts import HaircutsClient
from .users import UsersClient

__all__ = [
    "AiClient",
    "AppointmentDraft",
    "AppointmentsClient",
    "AuthClient",
    "AvailabilityResponse",
    "HaircutAnalysis",
    "HaircutsClient",
    "UsersClient",
]
