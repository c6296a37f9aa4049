import time
from typing import Callable, Optional, Tuple

from imgx import stages
from imgx.logger import tagged_logger
from imgx.models import EncodedImage, ProcessedImage, SourceImage
from imgx.pipeline.options import PipelineOptions

Stage = Tuple[str, Callable[[EncodedImage, object], ProcessedImage]]

# Fixed order; each stage consumes the previous stage's encoded output
STAGES: Tuple[Stage, ...] = (
    ('resize', stages.resize_image),
    ('compress', stages.compress_image),
    ('convert', stages.convert_image),
    ('transform', stages.apply_transform),
    ('filter', stages.apply_filter),
)


def run_pipeline(
    source: SourceImage,
    options: PipelineOptions,
    request_id: Optional[int] = None,
) -> ProcessedImage:
    """
    Run every stage over `source` and return the final image.

    Fails fast: the first stage error propagates and no partial result is
    returned. Intermediate images are released as soon as the next stage has
    consumed them.
    """
    log = tagged_logger(f"run#{request_id}" if request_id is not None else "run")
    log.debug(f"Start: {source.name} {source.width}x{source.height} {source.format.value}")

    started = time.perf_counter()
    current: EncodedImage = source
    try:
        for name, stage in STAGES:
            stage_started = time.perf_counter()
            result = stage(current, getattr(options, name))
            log.debug(
                f"{name}: {result.width}x{result.height} {result.format.value} "
                f"{result.size} bytes in {(time.perf_counter() - stage_started) * 1000:.1f} ms"
            )
            if current is not source:
                current.release()
            current = result
    except Exception:
        if current is not source:
            current.release()
        raise

    log.debug(f"Done in {(time.perf_counter() - started) * 1000:.1f} ms")
    return current
