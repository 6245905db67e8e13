class ArPipelineError(Exception):
    """Base class for pipeline errors."""


class EngineUnavailable(ArPipelineError):
    """The vision engine could not be initialized."""


class FrameCodecError(ArPipelineError):
    """An encoded frame could not be decoded, or a frame could not be encoded."""


class MarshalingFault(ArPipelineError, AssertionError):
    """Buffer shapes disagree with the configured M / P / S layout.

    This is a contract violation between the caller and the vision engine and
    is never recovered from inside the pipeline.
    """
