"""Weighted random choice among a model's endpoints."""

from __future__ import annotations

import logging
import random
from typing import Optional

from llm_gateway.config.models import Endpoint, ModelConfig
from llm_gateway.errors import ConfigurationError
from llm_gateway.observability.metrics import record_endpoint_selection

logger = logging.getLogger(__name__)


class EndpointSelector:
    """Pick an endpoint with probability proportional to its weight.

    Holds no state besides the random source; pass a seeded
    :class:`random.Random` for reproducible choices.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._random = rng.random if rng is not None else random.random

    def select(self, model: ModelConfig) -> Endpoint:
        endpoints = model.endpoints
        if not endpoints:
            raise ConfigurationError(f"Model '{model.id or model.name}' has no endpoints configured")

        total = sum(endpoint.weight for endpoint in endpoints)
        draw = self._random() * total
        for endpoint in endpoints:
            if draw < endpoint.weight:
                break
            draw -= endpoint.weight
        else:
            # float rounding can leave the draw at the very top of the range
            endpoint = endpoints[-1]

        logger.debug("Selected %s endpoint (weight %d/%d) for model '%s'", endpoint.host, endpoint.weight, total, model.id)
        record_endpoint_selection(model.id or model.name, endpoint.host)
        return endpoint
