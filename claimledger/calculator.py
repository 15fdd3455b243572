"""
Homomorphic payout computation.

Payout is expressed in basis points (10000 = 100%) as one linear polynomial
in the risk level:

    payout = loss * (10000 - (risk - 1) * 2500) // 10000

giving 100% / 75% / 50% for risk 1 / 2 / 3. The schedule is linear because
the arithmetic model has no encrypted branches and divides only by plaintext
constants; a lookup table (e.g. 80% for medium risk) cannot be expressed.
The medium-risk payout is therefore 75%, not 80%.
"""

import logging

from .backend import ConfidentialBackend
from .handles import CiphertextHandle
from .rate_limit import RateLimitDelay
from .store import Claim

logger = logging.getLogger(__name__)

BASIS_POINTS = 10000
RISK_STEP_BASIS_POINTS = 2500
RISK_FLOOR = 1


def expected_payout(loss_amount: int, risk_level: int) -> int:
    """Plaintext reference of the payout polynomial, for audits and tests."""
    percent = BASIS_POINTS - (risk_level - RISK_FLOOR) * RISK_STEP_BASIS_POINTS
    return loss_amount * percent // BASIS_POINTS


class HomomorphicPayoutCalculator:
    """
    Computes an encrypted payout from a claim's encrypted inputs.

    Every step is one backend call; the delay ticks between steps.
    """

    def __init__(self, backend: ConfidentialBackend, delay: RateLimitDelay):
        self._backend = backend
        self._delay = delay

    def compute(self, claim: Claim) -> CiphertextHandle:
        b = self._backend

        risk_minus_one = b.sub(claim.risk_level, RISK_FLOOR)
        self._delay.tick()

        risk_multiplier = b.mul(risk_minus_one, RISK_STEP_BASIS_POINTS)
        self._delay.tick()

        payout_percent = b.sub(BASIS_POINTS, risk_multiplier)
        self._delay.tick()

        payout_numerator = b.mul(claim.loss_amount, payout_percent)
        self._delay.tick()

        payout = b.div_by_constant(payout_numerator, BASIS_POINTS)
        logger.debug("payout computed: %s", payout.hex())
        return payout
