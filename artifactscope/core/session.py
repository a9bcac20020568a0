from __future__ import annotations

import shutil
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from artifactscope import __version__
from artifactscope.config import DEFAULT_LIMITS, EngineLimits, default_output_root
from artifactscope.core.errors import AnalysisCancelled, RootNotFoundError
from artifactscope.core.signatures import SignatureRegistry
from artifactscope.infra.logging_utils import LOGGER, log_extra

ProgressCallback = Callable[[int, str], None]


def _silent_progress(percent: int, message: str) -> None:
    return None


@dataclass
class AnalysisSession:
    """Everything one analysis run owns: its input root, output namespace, limits and cancel flag.

    Sessions are never shared between runs. Two runs that carve the same offset
    from different sources write into different ``output_dir`` trees.
    """

    session_id: str
    root: Path
    output_dir: Path
    limits: EngineLimits = DEFAULT_LIMITS
    registry: SignatureRegistry = field(default_factory=SignatureRegistry)
    progress: ProgressCallback = _silent_progress
    cancel_event: threading.Event = field(default_factory=threading.Event)
    cancelled: bool = False

    @property
    def carved_dir(self) -> Path:
        path = self.output_dir / "carved"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def extracted_dir(self) -> Path:
        path = self.output_dir / "extracted"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def report(self, percent: float, message: str) -> None:
        self.progress(max(0, min(100, int(round(percent)))), message)

    def cancel(self) -> None:
        self.cancel_event.set()

    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            self.cancelled = True
            raise AnalysisCancelled(self.session_id)


class SessionService:
    def __init__(self, base_dir: Optional[Path] = None, limits: EngineLimits = DEFAULT_LIMITS) -> None:
        self.base_dir = base_dir or default_output_root()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.limits = limits

    def create_session(
        self,
        root: Path,
        progress: Optional[ProgressCallback] = None,
        registry: Optional[SignatureRegistry] = None,
        limits: Optional[EngineLimits] = None,
    ) -> AnalysisSession:
        root = Path(root)
        if not root.exists():
            raise RootNotFoundError(str(root))
        session_id = str(uuid.uuid4())
        output_dir = self.base_dir / session_id
        output_dir.mkdir(parents=True, exist_ok=True)
        session = AnalysisSession(
            session_id=session_id,
            root=root.resolve(),
            output_dir=output_dir,
            limits=limits or self.limits,
            registry=registry.copy() if registry is not None else SignatureRegistry(),
            progress=progress or _silent_progress,
        )
        LOGGER.info(
            "Created analysis session",
            extra=log_extra(session=session_id, root=str(session.root), version=__version__),
        )
        return session

    def retire(self, session: AnalysisSession) -> None:
        session.cancel()
        shutil.rmtree(session.output_dir, ignore_errors=True)
        LOGGER.info("Retired analysis session", extra=log_extra(session=session.session_id))
