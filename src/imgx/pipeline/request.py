from dataclasses import dataclass

from imgx.models import SourceImage
from imgx.pipeline.options import PipelineOptions


@dataclass(frozen=True)
class ProcessRequest:
    """Immutable snapshot of one pipeline run. Eliminates race conditions."""
    source: SourceImage
    options: PipelineOptions
    request_id: int
