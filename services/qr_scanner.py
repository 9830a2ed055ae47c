"""
Camera scan session

Owns the media stream and the QR decoder while a scan step is on screen.
Whatever ends the step (a match, an explicit stop, leaving the step, cancelling
the scene, starting a new scan) must leave the stream with no live tracks.
"""

import asyncio
import logging
from io import BytesIO
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Protocol, Union

from PIL import Image, UnidentifiedImageError

from models import ReceiptFile
from utils import messages
from utils.exception_handler import CameraUnavailableError

logger = logging.getLogger(__name__)

LIVE = "live"
ENDED = "ended"


class MediaTrack(Protocol):
    ready_state: str

    def stop(self) -> None: ...


class MediaStream(Protocol):
    def get_tracks(self) -> List[MediaTrack]: ...


class MediaSource(Protocol):
    async def open_stream(self) -> MediaStream: ...


class QRDecoder(Protocol):
    def decode(self, frame: Any) -> Optional[str]: ...

    def reset(self) -> None: ...


ResultCallback = Callable[[str], Union[None, Awaitable[None]]]


def live_track_count(stream: Optional[MediaStream]) -> int:
    if stream is None:
        return 0
    return sum(1 for track in stream.get_tracks() if track.ready_state == LIVE)


class CameraScanSession:
    def __init__(self, media_source: MediaSource, decoder_factory: Callable[[], QRDecoder]):
        self.media_source = media_source
        self.decoder_factory = decoder_factory
        self.stream: Optional[MediaStream] = None
        self.decoder: Optional[QRDecoder] = None
        self._stopped = asyncio.Event()

    @property
    def is_active(self) -> bool:
        return self.stream is not None

    async def start(self) -> None:
        """Open the camera; a session already running is stopped first"""
        if self.is_active:
            logger.info("📷 Restarting camera scan, releasing previous stream")
            self.stop()

        try:
            stream = await self.media_source.open_stream()
        except CameraUnavailableError:
            raise
        except Exception as e:
            logger.warning(f"⚠️ Camera unavailable: {e}")
            raise CameraUnavailableError(f"camera unavailable: {e}", messages.CAMERA_UNAVAILABLE) from e

        self.stream = stream
        self.decoder = self.decoder_factory()
        self._stopped.clear()
        logger.info(f"📷 Camera scan started ({live_track_count(stream)} live tracks)")

    async def scan(self, on_result: ResultCallback, frames: Iterable[Any]) -> Optional[str]:
        """
        Decode frames until one yields a payload or the session is stopped.

        The first payload is handed to on_result and the camera is released
        before the callback runs. Returns the payload, or None when the frames
        ran out or stop() was called.
        """
        if not self.is_active:
            await self.start()

        for frame in frames:
            if self._stopped.is_set() or self.decoder is None:
                return None
            payload = self.decoder.decode(frame)
            if payload:
                self.stop()
                outcome = on_result(payload)
                if asyncio.iscoroutine(outcome):
                    await outcome
                return payload
            # let stop() from another task get in between frames
            await asyncio.sleep(0)
        return None

    def stop(self) -> None:
        """Stop every track and drop the stream and decoder; safe to call twice"""
        self._stopped.set()
        stream, decoder = self.stream, self.decoder
        self.stream = None
        self.decoder = None

        if decoder is not None:
            try:
                decoder.reset()
            except Exception as e:
                logger.warning(f"⚠️ QR decoder reset failed: {e}")
        if stream is not None:
            for track in stream.get_tracks():
                track.stop()
            logger.info("📷 Camera scan stopped")

    async def __aenter__(self) -> "CameraScanSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()


# ----- photos sent to the bot act as a one-frame camera -----


class PhotoTrack:
    def __init__(self):
        self.ready_state = LIVE

    def stop(self) -> None:
        self.ready_state = ENDED


class PhotoStream:
    def __init__(self, tracks: List[PhotoTrack]):
        self._tracks = tracks

    def get_tracks(self) -> List[PhotoTrack]:
        return list(self._tracks)


class PhotoMediaSource:
    """MediaSource over a photo the user sent instead of a live camera"""

    def __init__(self, photo: ReceiptFile):
        self.photo = photo

    async def open_stream(self) -> PhotoStream:
        if not self.photo or not self.photo.content:
            raise CameraUnavailableError("empty photo", messages.CAMERA_UNAVAILABLE)
        return PhotoStream([PhotoTrack()])


def photo_frames(photo: Optional[ReceiptFile]) -> List[Image.Image]:
    """The photo in colour and in grayscale; empty when it is not an image"""
    if photo is None or not photo.content:
        return []
    try:
        image = Image.open(BytesIO(photo.content))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"⚠️ Unreadable photo for QR scan: {e}")
        return []
    rgb = image.convert("RGB")
    return [rgb, rgb.convert("L")]


def photo_session_factory(
    decoder_factory: Optional[Callable[[], QRDecoder]],
) -> Optional[Callable[[ReceiptFile], CameraScanSession]]:
    """Camera factory for scan steps; None when no QR decoder is installed"""
    if decoder_factory is None:
        return None

    def factory(photo: ReceiptFile) -> CameraScanSession:
        return CameraScanSession(PhotoMediaSource(photo), decoder_factory)

    return factory
