"""Relay Transport - in-process transport driven from outside.

The media itself runs on the candidate's device. The relay records what the
controller asked for (join URL, media flags, leave/destroy) so the device can
act on it, and accepts the device's events through push().

Also the transport used in tests: joins can be delayed or made to fail.
"""

import asyncio

from interview_call.exceptions import TransportError
from interview_call.transport.base import MediaState, ParticipantJoined, Transport, TransportEvent


class RelayTransport(Transport):
    """Transport whose events are pushed in by the caller.

    Usage:
        transport = RelayTransport(local_participant_id="local-1")
        await transport.join(url, MediaState())

        transport.push(ParticipantJoined(participant_id="replica-1"))
    """

    def __init__(
        self,
        local_participant_id: str | None = None,
        join_error: Exception | None = None,
        join_delay_s: float = 0.0,
    ) -> None:
        super().__init__()
        self._local_participant_id = local_participant_id
        self._join_error = join_error
        self._join_delay_s = join_delay_s

        self._url: str | None = None
        self._media = MediaState(audio=False, video=False)
        self._joined = False
        self._destroyed = False
        self.calls: list[str] = []

    @property
    def name(self) -> str:
        return "relay"

    @property
    def local_participant_id(self) -> str | None:
        return self._local_participant_id

    @property
    def url(self) -> str | None:
        """URL of the last join request."""
        return self._url

    @property
    def media(self) -> MediaState:
        return self._media

    @property
    def is_joined(self) -> bool:
        return self._joined

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    async def join(self, url: str, media: MediaState) -> None:
        self.calls.append("join")
        if self._destroyed:
            raise TransportError("Transport already destroyed")
        if self._join_delay_s:
            await asyncio.sleep(self._join_delay_s)
        if self._join_error is not None:
            raise self._join_error
        self._url = url
        self._media = media
        self._joined = True

    async def leave(self) -> None:
        self.calls.append("leave")
        self._joined = False

    async def destroy(self) -> None:
        self.calls.append("destroy")
        self._joined = False
        self._destroyed = True

    async def set_local_audio(self, enabled: bool) -> None:
        self.calls.append(f"audio:{'on' if enabled else 'off'}")
        self._media = MediaState(audio=enabled, video=self._media.video)

    async def set_local_video(self, enabled: bool) -> None:
        self.calls.append(f"video:{'on' if enabled else 'off'}")
        self._media = MediaState(audio=self._media.audio, video=enabled)

    def push(self, event: TransportEvent) -> None:
        """Deliver an inbound event from the device."""
        if isinstance(event, ParticipantJoined) and event.local:
            self._local_participant_id = event.participant_id
        self.events.put(event)
