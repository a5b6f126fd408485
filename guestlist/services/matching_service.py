"""Face-matching oracle adapter and the fast check-in scan.

The oracle is an external vision model that receives one live capture and a
small batch of labelled candidate photos and names the matching candidate or
answers NO_MATCH.  This module only *finds* a match; checking the attendee in
is left to the lifecycle engine.
"""
import base64
import logging
import re
import threading
import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Optional

from openai import OpenAI
from sqlalchemy.orm import Session

from guestlist.config import settings
from guestlist.errors import EventNotFound, OracleUnavailable, ValidationError
from guestlist.models.attendee import Attendee, AttendeeStatus
from guestlist.models.event import Event
from guestlist.security import OperatorContext
from guestlist.services import attendee_service, photo_storage

logger = logging.getLogger(__name__)

Candidate = tuple[str, bytes]

SYSTEM_PROMPT = """You verify identities at an event entrance.

You receive one LIVE photo taken at the door, followed by candidate photos
labelled C1, C2, ... Decide whether the person in the LIVE photo is the same
person as exactly one candidate.

Answer with a single token and nothing else:
- the label of the matching candidate (for example C3), or
- NO_MATCH if no candidate clearly shows the same person.
"""

_LABEL_RE = re.compile(r"\bC(\d+)\b")


def _data_url(image: bytes) -> str:
    return "data:image/jpeg;base64," + base64.b64encode(image).decode("ascii")


def parse_answer(answer: str, candidate_ids: list[str]) -> Optional[str]:
    """Map the model's reply to a candidate id; None means no match."""
    text = (answer or "").strip().upper()
    if "NO_MATCH" in text or "NO MATCH" in text:
        return None
    found = _LABEL_RE.search(text)
    if not found:
        raise OracleUnavailable(f"unreadable answer {answer!r}")
    index = int(found.group(1))
    if not 1 <= index <= len(candidate_ids):
        raise OracleUnavailable(f"answer names unknown candidate C{index}")
    return candidate_ids[index - 1]


class MatchingOracle(ABC):
    """Narrow contract of the external face matcher."""

    @abstractmethod
    def match(self, live_photo: bytes, candidates: list[Candidate]) -> Optional[str]:
        """Return the attendee id of the matching candidate, or None."""


class OpenAIVisionOracle(MatchingOracle):
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Any = None):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise OracleUnavailable("no API key configured")
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def _build_messages(self, live_photo: bytes, candidates: list[Candidate]) -> list[dict]:
        content: list[dict] = [
            {"type": "text", "text": "LIVE photo:"},
            {"type": "image_url", "image_url": {"url": _data_url(live_photo)}},
        ]
        for index, (_, photo) in enumerate(candidates, start=1):
            content.append({"type": "text", "text": f"Candidate C{index}:"})
            content.append({"type": "image_url", "image_url": {"url": _data_url(photo)}})
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": content},
        ]

    def match(self, live_photo: bytes, candidates: list[Candidate]) -> Optional[str]:
        if not candidates:
            return None
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=self._build_messages(live_photo, candidates),
                temperature=0,
                max_tokens=10,
            )
        except Exception as e:
            logger.error("Vision model call failed: %s", e)
            raise OracleUnavailable(str(e))

        answer = response.choices[0].message.content or ""
        logger.debug("Oracle answered %r for %d candidates", answer, len(candidates))
        return parse_answer(answer, [attendee_id for attendee_id, _ in candidates])


def get_oracle() -> MatchingOracle:
    """FastAPI dependency; tests override it with a fake."""
    return OpenAIVisionOracle()


# ── Scan sessions ──────────────────────────────────────────────────
class ScanSession:
    """One live scan holding the captured frame until released.

    ``cancel()`` stops the batch loop before its next oracle call and
    releases the capture immediately, on the calling thread.
    """

    def __init__(self, capture: bytes, scan_id: Optional[str] = None,
                 on_release: Optional[Callable[[], None]] = None):
        self.scan_id = scan_id or str(uuid.uuid4())
        self.capture: Optional[bytes] = capture
        self.oracle_calls = 0
        self._on_release = on_release
        self._cancelled = threading.Event()
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def released(self) -> bool:
        return self.capture is None

    def cancel(self) -> None:
        self._cancelled.set()
        self.release()
        logger.info("Scan %s cancelled", self.scan_id)

    def release(self) -> None:
        with self._lock:
            if self.capture is None:
                return
            self.capture = None
            callback, self._on_release = self._on_release, None
        if callback is not None:
            callback()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


class ScanRegistry:
    """Running scans by id, so another request can cancel one.

    A cancel may reach the registry before its scan does; the id is kept
    and the scan starts already cancelled.
    """

    def __init__(self, max_early_cancels: int = 256):
        self._lock = threading.Lock()
        self._sessions: dict[str, ScanSession] = {}
        self._early_cancels: OrderedDict[str, None] = OrderedDict()
        self._max_early_cancels = max_early_cancels

    def start(self, capture: bytes, scan_id: Optional[str] = None) -> ScanSession:
        session = ScanSession(capture, scan_id=scan_id)
        with self._lock:
            if session.scan_id in self._sessions:
                raise ValidationError("scan_id", f"scan {session.scan_id} is already running")
            self._sessions[session.scan_id] = session
            cancelled_early = session.scan_id in self._early_cancels
            if cancelled_early:
                del self._early_cancels[session.scan_id]
        if cancelled_early:
            session.cancel()
        return session

    def get(self, scan_id: str) -> Optional[ScanSession]:
        with self._lock:
            return self._sessions.get(scan_id)

    def cancel(self, scan_id: str) -> bool:
        """Cancel *scan_id*; False means it is not running yet and will start cancelled."""
        with self._lock:
            session = self._sessions.get(scan_id)
            if session is None:
                self._early_cancels[scan_id] = None
                while len(self._early_cancels) > self._max_early_cancels:
                    self._early_cancels.popitem(last=False)
                return False
        session.cancel()
        return True

    def finish(self, scan_id: str) -> None:
        with self._lock:
            self._sessions.pop(scan_id, None)

    def active(self) -> list[str]:
        with self._lock:
            return list(self._sessions)


scan_registry = ScanRegistry()


def find_match(
    oracle: MatchingOracle,
    session: ScanSession,
    candidates: list[tuple[str, Optional[str]]],
    batch_size: Optional[int] = None,
    loader: Optional[Callable[[Optional[str]], Optional[bytes]]] = None,
) -> Optional[str]:
    """Query the oracle batch by batch and stop at the first match.

    *candidates* are ``(attendee_id, photo_url)`` pairs in a stable order.
    Photos are loaded per batch; a candidate without a loadable photo is
    skipped.  No oracle call is made once the session is cancelled.
    """
    size = max(1, batch_size or settings.MATCH_BATCH_SIZE)
    loader = loader or photo_storage.load_photo
    for start in range(0, len(candidates), size):
        if session.cancelled:
            return None
        batch = []
        for attendee_id, url in candidates[start:start + size]:
            photo = loader(url)
            if not photo:
                logger.debug("Skipping candidate %s without photo", attendee_id)
                continue
            batch.append((attendee_id, photo))

        live = session.capture
        if session.cancelled or live is None:
            return None
        if not batch:
            continue

        session.oracle_calls += 1
        matched = oracle.match(live, batch)
        if matched:
            logger.info("Scan %s matched %s in batch %d", session.scan_id, matched, start // size + 1)
            return matched
    return None


def fast_checkin(
    db: Session,
    event_id: str,
    live_photo: Any,
    ctx: OperatorContext,
    oracle: MatchingOracle,
    check_in: bool = False,
    wristbands: Optional[dict[str, Optional[str]]] = None,
    scan_id: Optional[str] = None,
    registry: ScanRegistry = scan_registry,
) -> dict[str, Any]:
    """Identify a PENDING attendee from a live capture, optionally checking them in."""
    if db.get(Event, event_id) is None:
        raise EventNotFound(event_id)
    if not live_photo:
        raise ValidationError("live_photo", "a capture is required")
    capture = photo_storage.decode_payload(live_photo)
    session = registry.start(capture, scan_id=scan_id)
    try:
        with session:
            candidates = (
                db.query(Attendee.attendee_id, Attendee.photo)
                .filter(
                    Attendee.event_id == event_id,
                    Attendee.status == AttendeeStatus.pending,
                    Attendee.photo.isnot(None),
                )
                .order_by(Attendee.created_at, Attendee.attendee_id)
                .all()
            )
            matched_id = find_match(oracle, session, [(c[0], c[1]) for c in candidates])
    finally:
        registry.finish(session.scan_id)

    result: dict[str, Any] = {
        "scan_id": session.scan_id,
        "matched": False,
        "cancelled": session.cancelled,
        "attendee": None,
    }
    if session.cancelled or not matched_id:
        logger.info("Scan %s over %d candidates: %s", session.scan_id, len(candidates),
                    "cancelled" if session.cancelled else "no match")
        return result

    if check_in:
        attendee = attendee_service.check_in(db, event_id, matched_id, wristbands or {}, ctx)
    else:
        attendee = attendee_service.get_attendee(db, event_id, matched_id)
    result.update(matched=True, attendee=attendee)
    return result


def verify_identity(
    db: Session, event_id: str, attendee_id: str, live_photo: Any, oracle: MatchingOracle
) -> bool:
    """Does the live capture show this attendee?"""
    attendee = attendee_service.get_attendee(db, event_id, attendee_id)
    stored = photo_storage.load_photo(attendee.photo)
    if not stored:
        raise ValidationError("photo", "attendee has no stored photo to compare against")
    capture = photo_storage.decode_payload(live_photo)
    verified = oracle.match(capture, [(attendee.attendee_id, stored)]) == attendee.attendee_id
    logger.info("Identity check for attendee %s: %s", attendee_id, "verified" if verified else "not verified")
    return verified
