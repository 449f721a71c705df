"""Playback: the snapshot queue and the controller that drives an audio engine."""

from tuneout.playback.controller import AudioEngine, PlaybackController, PlayerState
from tuneout.playback.queue import PlaybackQueue, same_station

__all__ = ["AudioEngine", "PlaybackController", "PlaybackQueue", "PlayerState", "same_station"]
