from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Final

from lifeline.domain.constants import BloodGroup

# Donor group -> recipient groups it can safely give to.
DONOR_TO_RECIPIENTS: Final[Mapping[BloodGroup, tuple[BloodGroup, ...]]] = MappingProxyType(
    {
        BloodGroup.O_NEG: (
            BloodGroup.O_NEG,
            BloodGroup.O_POS,
            BloodGroup.A_NEG,
            BloodGroup.A_POS,
            BloodGroup.B_NEG,
            BloodGroup.B_POS,
            BloodGroup.AB_NEG,
            BloodGroup.AB_POS,
        ),
        BloodGroup.O_POS: (BloodGroup.O_POS, BloodGroup.A_POS, BloodGroup.B_POS, BloodGroup.AB_POS),
        BloodGroup.A_NEG: (BloodGroup.A_NEG, BloodGroup.A_POS, BloodGroup.AB_NEG, BloodGroup.AB_POS),
        BloodGroup.A_POS: (BloodGroup.A_POS, BloodGroup.AB_POS),
        BloodGroup.B_NEG: (BloodGroup.B_NEG, BloodGroup.B_POS, BloodGroup.AB_NEG, BloodGroup.AB_POS),
        BloodGroup.B_POS: (BloodGroup.B_POS, BloodGroup.AB_POS),
        BloodGroup.AB_NEG: (BloodGroup.AB_NEG, BloodGroup.AB_POS),
        BloodGroup.AB_POS: (BloodGroup.AB_POS,),
    }
)

# Share of the population (percent) carrying each group.
RARITY_WEIGHT: Final[Mapping[BloodGroup, float]] = MappingProxyType(
    {
        BloodGroup.AB_NEG: 0.6,
        BloodGroup.B_NEG: 1.5,
        BloodGroup.AB_POS: 3.4,
        BloodGroup.A_NEG: 6.3,
        BloodGroup.O_NEG: 6.6,
        BloodGroup.B_POS: 8.5,
        BloodGroup.A_POS: 30.9,
        BloodGroup.O_POS: 37.4,
    }
)


def compatible_recipients(donor: BloodGroup | str) -> tuple[BloodGroup, ...]:
    return DONOR_TO_RECIPIENTS[BloodGroup(donor)]


def compatible_donors(recipient: BloodGroup | str) -> tuple[BloodGroup, ...]:
    target = BloodGroup(recipient)
    return tuple(donor for donor in DONOR_TO_RECIPIENTS if target in compatible_recipients(donor))
