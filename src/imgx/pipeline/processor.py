from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, Optional

from PySide6.QtCore import QObject, Qt, QTimer, Signal
from loguru import logger

from imgx import config
from imgx.errors import ImgxError, RecentsError
from imgx.models import ProcessedImage, SourceImage
from imgx.pipeline import options as opts
from imgx.pipeline.options import PipelineOptions
from imgx.pipeline.recents import RecentImagesStore
from imgx.pipeline.request import ProcessRequest
from imgx.pipeline.runner import run_pipeline
from imgx.pipeline.state import PreviewState


class PreviewStatus(Enum):
    IDLE = 'idle'
    DEBOUNCING = 'debouncing'
    RUNNING = 'running'


class PreviewController(QObject):
    """
    Live recompute controller.

    Every source or option change bumps a generation counter and restarts a
    single-shot quiet-period timer. When the timer fires the current
    (source, options) pair is snapshotted into a ProcessRequest and run on a
    worker pool. Results come back on this object's thread; anything whose
    request_id is not the current generation is dropped.
    """
    preview_ready = Signal(object)  # ProcessedImage
    preview_cleared = Signal()
    error_occurred = Signal(str)
    running_changed = Signal(bool)
    warning = Signal(str)

    # request_id, result, error; emitted from worker threads
    _run_finished = Signal(int, object, object)

    def __init__(
        self,
        debounce_ms: int = config.DEBOUNCE_MS,
        max_workers: int = config.MAX_WORKERS,
        recents: Optional[RecentImagesStore] = None,
        runner: Callable[..., ProcessedImage] = run_pipeline,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)

        # Request management
        self.current_request_id = 0

        # Inputs
        self.source: Optional[SourceImage] = None
        self.options: Optional[PipelineOptions] = None

        self.preview = PreviewState()
        self.recents = recents
        self._runner = runner
        self._running = False
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="imgx-pipeline")

        self.update_timer = QTimer(self)
        self.update_timer.setSingleShot(True)
        self.update_timer.setInterval(debounce_ms)
        self.update_timer.timeout.connect(self._start_run)

        self._run_finished.connect(self._on_run_finished, Qt.ConnectionType.QueuedConnection)

    @classmethod
    def from_user_config(cls, path=config.CONFIG_FILE, parent: Optional[QObject] = None) -> "PreviewController":
        """Build a controller from ~/.imgx/config.json (debounce, workers, recents file)."""
        user_config = config.load_user_config(path)
        try:
            recents = RecentImagesStore(user_config['recents_path'])
        except RecentsError as e:
            logger.warning(f"{e}; recent images will not be persisted")
            recents = RecentImagesStore(None)
        return cls(
            debounce_ms=user_config['debounce_ms'],
            max_workers=user_config['max_workers'],
            recents=recents,
            parent=parent,
        )

    # --- State -------------------------------------------------------------

    @property
    def state(self) -> PreviewStatus:
        if self.update_timer.isActive():
            return PreviewStatus.DEBOUNCING
        if self._running:
            return PreviewStatus.RUNNING
        return PreviewStatus.IDLE

    @property
    def current_preview(self) -> Optional[ProcessedImage]:
        return self.preview.current

    # --- Inputs ------------------------------------------------------------

    def set_source(self, source: SourceImage, remember: bool = True):
        """Start a new session on `source` with default options for every stage"""
        logger.info(f"[Preview] New source: {source.name} {source.width}x{source.height} {source.format.value}")
        self.source = source
        self.options = opts.default_options(source)
        self.preview.clear()
        self.preview_cleared.emit()

        if remember and self.recents is not None:
            try:
                self.recents.add(source)
            except RecentsError as e:
                logger.warning(f"[Preview] {e}")
                self.warning.emit(str(e))

        self._schedule()

    def clear_source(self):
        """Drop the source, invalidate any run in flight and clear the preview"""
        self.update_timer.stop()
        self.current_request_id += 1
        self.source = None
        self.options = None
        self.preview.clear()
        self._set_running(False)
        self.preview_cleared.emit()

    def set_options(self, options: PipelineOptions):
        if self.source is None:
            raise RuntimeError("set_options() called without a source")
        self.options = options.clamped(self.source)
        self._schedule()

    def update_stage(self, stage: str, stage_options):
        """Replace one stage's options (clamped)"""
        if self.options is None:
            raise RuntimeError("update_stage() called without a source")
        self.set_options(self.options.replace(stage, stage_options))

    def reset_stage(self, stage: str):
        if self.source is None:
            raise RuntimeError("reset_stage() called without a source")
        self.options = opts.reset_stage(self.options, stage, self.source)
        self._schedule()

    def refresh(self):
        """Recompute with the current inputs"""
        if self.source is not None:
            self._schedule()

    def shutdown(self):
        self.update_timer.stop()
        self.current_request_id += 1
        self._executor.shutdown(wait=True, cancel_futures=True)
        self.preview.clear()
        self._set_running(False)

    # --- Scheduling --------------------------------------------------------

    def _schedule(self):
        self.current_request_id += 1
        self._set_running(False)
        self.update_timer.start()
        logger.debug(f"[Preview] Scheduled generation #{self.current_request_id}")

    def _start_run(self):
        if self.source is None or self.options is None:
            return

        request = ProcessRequest(self.source, self.options, self.current_request_id)
        self._set_running(True)
        logger.debug(f"[Preview] Starting run #{request.request_id}")
        self._executor.submit(self._execute, request)

    def _execute(self, request: ProcessRequest):
        """Worker thread body. Never touches controller state directly."""
        try:
            result = self._runner(request.source, request.options, request.request_id)
        except ImgxError as e:
            self._run_finished.emit(request.request_id, None, e)
        except Exception as e:
            logger.exception(f"[Worker] Unexpected error in run #{request.request_id}")
            self._run_finished.emit(request.request_id, None, e)
        else:
            self._run_finished.emit(request.request_id, result, None)

    def _on_run_finished(self, request_id: int, result: Optional[ProcessedImage], error: Optional[BaseException]):
        if request_id != self.current_request_id:
            logger.debug(f"[Preview] Dropping stale result #{request_id} (current #{self.current_request_id})")
            if result is not None:
                result.release()
            return

        self._set_running(False)

        if error is not None:
            logger.error(f"[Preview] Run #{request_id} failed: {error}")
            self.error_occurred.emit(str(error))
            return

        self.preview.update(result)
        logger.debug(f"[Preview] Run #{request_id} ready: {result.width}x{result.height} {result.size} bytes")
        self.preview_ready.emit(result)

    def _set_running(self, running: bool):
        if running != self._running:
            self._running = running
            self.running_changed.emit(running)
