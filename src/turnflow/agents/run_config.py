"""Per-invocation run configuration."""

import logging
from dataclasses import dataclass, field
from enum import Enum

from turnflow.config import get_settings

logger = logging.getLogger(__name__)


class StreamingMode(str, Enum):
    """How model output is delivered to the caller.

    - NONE: one complete response per backend call
    - SSE: partial responses streamed, then the complete one
    - BIDI: duplex live connection (run_live)
    """

    NONE = "none"
    SSE = "sse"
    BIDI = "bidi"


@dataclass(kw_only=True)
class RunConfig:
    """Runtime behaviour of one invocation.

    Attributes:
        streaming_mode: Output delivery mode
        save_input_blobs_as_artifacts: Off-load inline user blobs to the artifact store
        max_llm_calls: Backend call limit per invocation; ``<= 0`` disables it
        response_modalities: Live mode output modalities, e.g. ``["AUDIO"]``
        input_audio_transcription: Live mode: transcribe user audio
        output_audio_transcription: Live mode: transcribe model audio
    """

    streaming_mode: StreamingMode = StreamingMode.NONE
    save_input_blobs_as_artifacts: bool = field(
        default_factory=lambda: get_settings().save_input_blobs_as_artifacts
    )
    max_llm_calls: int = field(default_factory=lambda: get_settings().default_max_llm_calls)
    response_modalities: list[str] | None = None
    input_audio_transcription: bool | None = None
    output_audio_transcription: bool | None = None

    def __post_init__(self) -> None:
        if self.max_llm_calls <= 0:
            logger.warning(
                "max_llm_calls is less than or equal to 0. This will result in no enforcement "
                "on total number of llm calls that will be made for a run."
            )


__all__ = ["RunConfig", "StreamingMode"]
