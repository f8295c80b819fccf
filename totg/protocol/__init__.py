from totg.protocol.wire import (
    JointLimits,
    JointSpec,
    PlanRequest,
    PlanResult,
    decode_request,
    encode_result,
)

__all__ = [
    "JointLimits",
    "JointSpec",
    "PlanRequest",
    "PlanResult",
    "decode_request",
    "encode_result",
]
