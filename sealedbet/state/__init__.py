"""
Ledger state tables for the sealed-score prediction market
"""

from .batches import Batch, BatchStatus
from .cooldowns import ActionClass, CooldownTable
from .predictions import Prediction, PredictionKey
from .requests import DecryptionContext, RequestStatus
from .roles import Actor, Role, RoleTable

__all__ = [
    "Actor",
    "ActionClass",
    "Batch",
    "BatchStatus",
    "CooldownTable",
    "DecryptionContext",
    "Prediction",
    "PredictionKey",
    "RequestStatus",
    "Role",
    "RoleTable",
]
