"""Shrink pipeline service.

This module sequences the stages that shrink one image:

    attach → read metadata → check → minimum size → plan
        → (already minimal) release → compress
        → resize → zero-fill → detach → rewrite partition → truncate
          → reattach → release → compress

The pipeline owns the attached device. Whatever stage fails, the device is
detached exactly once on the way out, and SIGINT/SIGTERM received while a
device is attached become ``ShrinkInterrupted`` so that cleanup still runs.
Detach itself runs with those signals blocked, so a second interrupt is
raised only once the device is gone.
"""

from __future__ import annotations

import signal
import threading
from contextlib import contextmanager
from typing import Callable, Generator, Optional

from imgshrink.domain.models import (
    AttachedDevice,
    CompressionStrategy,
    FilesystemStats,
    ImageHandle,
    PartitionSpec,
    PipelineContext,
    PipelineState,
    ShrinkPlan,
    ShrinkResult,
)
from imgshrink.logging import get_logger, operation_context
from imgshrink.storage import sizing
from imgshrink.storage.attach import DeviceAttacher, select_attacher
from imgshrink.storage.compression import Compressor
from imgshrink.storage.exceptions import ShrinkError, ShrinkInterrupted
from imgshrink.storage.filesystem import FilesystemInspector, Resizer, ZeroFill
from imgshrink.storage.image_lock import image_operation
from imgshrink.storage.images import human_size
from imgshrink.storage.partition_table import PartitionRewriter

log = get_logger(source="shrink")

INTERRUPT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@contextmanager
def cancellation_scope(signals=INTERRUPT_SIGNALS) -> Generator[None, None, None]:
    """Turn ``signals`` into ShrinkInterrupted inside the block.

    Handlers can only be installed from the main thread; elsewhere the block
    runs unguarded.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _interrupt(signum, frame):
        raise ShrinkInterrupted(signum)

    previous = {signum: signal.signal(signum, _interrupt) for signum in signals}
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)


@contextmanager
def deferred_signals(signals=INTERRUPT_SIGNALS) -> Generator[None, None, None]:
    """Block ``signals`` inside the block; pending ones are delivered on exit.

    Child processes started inside the block inherit the mask, so a Ctrl-C
    cannot kill a detach half way. Only the main thread is masked.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = signal.pthread_sigmask(signal.SIG_BLOCK, signals)
    try:
        yield
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, previous)


class ShrinkPipeline:
    """Controller for one shrink run.

    Collaborators default to the real implementations and can be replaced,
    which is how the tests drive the state machine without touching devices.
    """

    def __init__(
        self,
        context: PipelineContext,
        *,
        attacher: Optional[DeviceAttacher] = None,
        inspector: Optional[FilesystemInspector] = None,
        resizer: Optional[Resizer] = None,
        rewriter: Optional[PartitionRewriter] = None,
        compressor: Optional[Compressor] = None,
        zero_fill: Optional[Callable[[AttachedDevice], bool]] = None,
    ):
        self.context = context
        self.attacher = attacher or select_attacher()
        self.inspector = inspector or FilesystemInspector()
        self.resizer = resizer or Resizer()
        self.rewriter = rewriter or PartitionRewriter()
        self.compressor = compressor or Compressor()
        self.zero_fill = zero_fill or ZeroFill()
        self.states: list[PipelineState] = [PipelineState.START]
        self._device: Optional[AttachedDevice] = None

    @property
    def device(self) -> Optional[AttachedDevice]:
        """The currently attached device, if any."""
        return self._device

    @property
    def state(self) -> PipelineState:
        return self.states[-1]

    def run(self) -> ShrinkResult:
        """Shrink the image, returning where the result ended up.

        Raises:
            ShrinkError: Any stage failure; the device has been released
        """
        image = self.context.image
        bytes_before = image.byte_length

        with image_operation(image.path), operation_context(
            "shrink", image=str(image.path)
        ):
            try:
                with cancellation_scope():
                    try:
                        image, plan = self._shrink(image)
                    finally:
                        self._release()
                output_path = self._compress(image)
            except Exception:
                self._transition(PipelineState.ABORTED)
                raise
            self._transition(PipelineState.DONE)

        bytes_after = output_path.stat().st_size
        log.info(
            f"Shrunk {output_path} from {human_size(bytes_before)} "
            f"to {human_size(bytes_after)}"
        )
        if not self.context.skip_autoexpand:
            log.info(
                "Autoexpand was not injected; the image keeps its shrunk size on first boot."
            )
        return ShrinkResult(
            output_path=output_path,
            bytes_before=bytes_before,
            bytes_after=bytes_after,
            plan=plan,
            states=list(self.states),
        )

    def _transition(self, state: PipelineState) -> None:
        log.debug(f"State {self.state.value} -> {state.value}")
        self.states.append(state)

    def _shrink(self, image: ImageHandle) -> tuple[ImageHandle, ShrinkPlan]:
        log.info("Gathering data")
        self._device = self.attacher.attach(image)
        self._transition(PipelineState.ATTACHED)
        device = self._device

        block_count, block_size = self.inspector.read_metadata(device)
        self.inspector.check(device, self.context.repair_allowed)
        self._transition(PipelineState.CHECKED)

        stats = FilesystemStats(
            block_count=block_count,
            block_size=block_size,
            minimum_block_count=self.inspector.query_minimum_blocks(device),
        )
        plan = self._plan(stats)
        self._transition(PipelineState.PLANNED)

        if plan.is_noop:
            log.info("Filesystem already at minimum size")
            self._transition(PipelineState.ALREADY_MINIMAL)
            return image, plan

        self.resizer.resize(device, plan.target_blocks)
        self._transition(PipelineState.RESIZED)
        if self.context.zero_fill:
            self._zero_fill(device)

        spec = PartitionSpec.for_plan(device, plan, stats.block_size)
        self._detach()
        self._transition(PipelineState.DETACHED)

        boundary = self.rewriter.rewrite(image, spec)
        self._transition(PipelineState.REPARTITIONED)
        image = self.rewriter.truncate(image, boundary)
        self._transition(PipelineState.TRUNCATED)

        self._reattach(image, device)
        return image, plan

    def _plan(self, stats: FilesystemStats) -> ShrinkPlan:
        minimum = stats.minimum_block_count
        if minimum > stats.block_count:
            log.warning(
                f"Reported minimum {minimum} exceeds current size "
                f"{stats.block_count}; leaving the filesystem as is"
            )
            minimum = stats.block_count
        plan = sizing.plan(stats.block_count, minimum, stats.block_size)
        log.debug(
            f"Plan: current={plan.current_blocks} minimum={plan.minimum_blocks} "
            f"slack={plan.slack_blocks} target={plan.target_blocks}"
        )
        return plan

    def _zero_fill(self, device: AttachedDevice) -> None:
        try:
            self.zero_fill(device)
        except ShrinkInterrupted:
            raise
        except Exception as error:
            log.warning(f"Zero-fill failed and was skipped: {error}")

    def _detach(self) -> None:
        if self._device is None:
            return
        with deferred_signals():
            self.attacher.detach(self._device)
            self._device = None

    def _reattach(self, image: ImageHandle, previous: AttachedDevice) -> None:
        try:
            self._device = self.attacher.reattach(image, previous)
        except ShrinkInterrupted:
            raise
        except ShrinkError as error:
            log.warning(f"Re-attach for clean release failed: {error}")
            return
        self._transition(PipelineState.REATTACHED)

    def _release(self) -> None:
        if self._device is None:
            return
        try:
            self._detach()
        finally:
            self._transition(PipelineState.RELEASED)

    def _compress(self, image: ImageHandle):
        strategy = self.context.compression
        if strategy == CompressionStrategy.NONE:
            return image.path
        output_path = self.compressor.compress(image, strategy)
        self._transition(PipelineState.COMPRESSED)
        return output_path
