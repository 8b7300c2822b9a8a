"""Advisory per-message credit pricing.

The estimate is shown to the user before sending. It never touches the
ledger: the only committed charge is the flat per-session debit made by the
session service.
"""

import math

from avatar_chat.schemas.credit_schema import CostBreakdown, CostEstimate

BASE_COST = 1
LONG_MESSAGE_CHARS = 2000
MEDIUM_MESSAGE_CHARS = 1000
LONG_MESSAGE_SURCHARGE = 1.0
MEDIUM_MESSAGE_SURCHARGE = 0.5
IMAGE_SURCHARGE = 2
LARGE_CONTEXT_CHARS = 5000
LARGE_CONTEXT_SURCHARGE = 1


def estimate_cost(
    message_length: int,
    has_images: bool = False,
    conversation_context_size: int = 0,
) -> CostEstimate:
    """Price a prospective message from its shape."""
    if message_length > LONG_MESSAGE_CHARS:
        length = LONG_MESSAGE_SURCHARGE
    elif message_length > MEDIUM_MESSAGE_CHARS:
        length = MEDIUM_MESSAGE_SURCHARGE
    else:
        length = 0.0

    image = IMAGE_SURCHARGE if has_images else 0
    context = (
        LARGE_CONTEXT_SURCHARGE
        if conversation_context_size > LARGE_CONTEXT_CHARS
        else 0
    )

    breakdown = CostBreakdown(base=BASE_COST, length=length, image=image, context=context)
    return CostEstimate(
        total_cost=math.ceil(BASE_COST + length + image + context),
        breakdown=breakdown,
    )
