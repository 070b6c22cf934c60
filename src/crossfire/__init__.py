"""Crossfire package exposing the game machine, network peers, and the relay application."""

from .bot import BotDriver
from .content import ContentSource
from .machine import GameMachine, MoveRejected
from .peers import GuestPeer, HostPeer
from .relay import app
from .session import Session

__all__ = [
    "BotDriver",
    "ContentSource",
    "GameMachine",
    "GuestPeer",
    "HostPeer",
    "MoveRejected",
    "Session",
    "app",
]
