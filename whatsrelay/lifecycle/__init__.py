"""
whatsrelay Connection Lifecycle.

Core Components:
- ConnectionController: the state machine and its single timer slot
- ConnectionState / PairingCode / ControllerSnapshot: state types
- BackoffStrategy: reconnect delay policy
"""

from .backoff import BackoffStrategy, ConstantBackoff, ExponentialBackoff, create_backoff
from .controller import ConnectionController
from .state import ConnectionState, ControllerSnapshot, PairingCode, bot_number_from_jid
from .timers import ReconnectTimer, TimerKind, TimerSlot

__all__ = [
    # Controller
    "ConnectionController",
    # State
    "ConnectionState",
    "ControllerSnapshot",
    "PairingCode",
    "bot_number_from_jid",
    # Timers
    "ReconnectTimer",
    "TimerKind",
    "TimerSlot",
    # Backoff
    "BackoffStrategy",
    "ConstantBackoff",
    "ExponentialBackoff",
    "create_backoff",
]
