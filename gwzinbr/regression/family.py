"""
Count-model families supported by the geographically weighted fits.
"""
from enum import Enum
from typing import Union

from ..errors import FamilyError


class Family(Enum):
    """Closed set of count-model families.

    Two capabilities decide which solver phases run for a family: `estimates_dispersion` (Newton-Raphson on the
    negative binomial dispersion; otherwise alpha is fixed to a tiny value and the model is effectively Poisson) and
    `zero_inflated` (EM alternation with a logistic model for excess zeros).
    """

    POISSON = "poisson"
    NEGBIN = "negbin"
    ZIP = "zip"
    ZINB = "zinb"

    @property
    def estimates_dispersion(self) -> bool:
        return self in (Family.NEGBIN, Family.ZINB)

    @property
    def zero_inflated(self) -> bool:
        return self in (Family.ZIP, Family.ZINB)

    def downgraded(self) -> "Family":
        """Family without the zero-inflation component."""
        if self is Family.ZINB:
            return Family.NEGBIN
        if self is Family.ZIP:
            return Family.POISSON
        return self

    @classmethod
    def parse(cls, name: Union[str, "Family"]) -> "Family":
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).lower())
        except ValueError:
            raise FamilyError(
                f"Invalid model family '{name}'. Options: {', '.join(member.value for member in cls)}."
            ) from None
