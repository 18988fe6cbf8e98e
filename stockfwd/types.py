"""Core data types for stockfwd.

This module is the single source of truth for:
  - QuantityKind: the closed set of projectable quantities
  - Timing: when within a year a biomass quantity is measured
  - BoundColumn: layout of the per-iteration target array
  - FailureKind, IterationStatus: per-iteration outcome tags
  - TargetFailure, IterationOutcome: result transfer objects

All modules import these types from here.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class Timing(IntEnum):
    """Point within a year at which a biomass quantity is read.

    END       survivors of the year's full mortality
    SPAWNING  numbers at spawning, after the pre-spawning fractions of F and M
    FLASH     spawning biomass at the first spawning event the year's F can
              reach: this year's if fishing precedes spawning, else next year's
              with next year's F set to zero
    """
    END      = 0
    SPAWNING = 1
    FLASH    = 2


class QuantityKind(IntEnum):
    """Quantities a projection target can be set on.

    Each kind carries its measurement timing, whether it counts only mature
    fish, and its response polarity to the F multiplier.
    """
    F             = 0   # Fbar over the stock's reference age range
    CATCH         = 1   # total catch weight (Baranov)
    SSB_END       = 2
    SSB_SPAWN     = 3
    SSB_FLASH     = 4
    BIOMASS_END   = 5
    BIOMASS_SPAWN = 6
    BIOMASS_FLASH = 7
    SRP           = 8   # stock-recruitment potential: mature biomass at spawning

    @property
    def timing(self) -> Optional[Timing]:
        return _KIND_TIMING[self]

    @property
    def mature(self) -> bool:
        return self in (QuantityKind.SSB_END, QuantityKind.SSB_SPAWN,
                        QuantityKind.SSB_FLASH, QuantityKind.SRP)

    @property
    def increasing(self) -> bool:
        """True when the quantity rises with fishing mortality."""
        return self in (QuantityKind.F, QuantityKind.CATCH)

    @property
    def spawning_timed(self) -> bool:
        """True for kinds read at spawning that may need look-ahead."""
        return self.timing is Timing.SPAWNING

    @classmethod
    def parse(cls, name) -> 'QuantityKind':
        """Resolve a kind from an enum member, an int or a name/alias.

        Raises:
            ConfigurationError: If the name is not a known quantity.
        """
        from stockfwd.errors import ConfigurationError

        if isinstance(name, QuantityKind):
            return name
        if isinstance(name, int) and not isinstance(name, bool):
            try:
                return cls(name)
            except ValueError:
                raise ConfigurationError(f"Unknown quantity kind: {name!r}") from None
        key = str(name).strip().lower()
        if key in _KIND_ALIASES:
            return _KIND_ALIASES[key]
        raise ConfigurationError(
            f"Unknown quantity kind '{name}'. "
            f"Valid names: {sorted(_KIND_ALIASES)}"
        )


_KIND_TIMING = {
    QuantityKind.F:             None,
    QuantityKind.CATCH:         None,
    QuantityKind.SSB_END:       Timing.END,
    QuantityKind.SSB_SPAWN:     Timing.SPAWNING,
    QuantityKind.SSB_FLASH:     Timing.FLASH,
    QuantityKind.BIOMASS_END:   Timing.END,
    QuantityKind.BIOMASS_SPAWN: Timing.SPAWNING,
    QuantityKind.BIOMASS_FLASH: Timing.FLASH,
    QuantityKind.SRP:           Timing.SPAWNING,
}

_KIND_ALIASES = {
    'f':             QuantityKind.F,
    'fbar':          QuantityKind.F,
    'catch':         QuantityKind.CATCH,
    'ssb':           QuantityKind.SSB_END,
    'ssb_end':       QuantityKind.SSB_END,
    'ssb_spawn':     QuantityKind.SSB_SPAWN,
    'ssb_flash':     QuantityKind.SSB_FLASH,
    'biomass':       QuantityKind.BIOMASS_END,
    'biomass_end':   QuantityKind.BIOMASS_END,
    'biomass_spawn': QuantityKind.BIOMASS_SPAWN,
    'biomass_flash': QuantityKind.BIOMASS_FLASH,
    'srp':           QuantityKind.SRP,
}


class BoundColumn(IntEnum):
    """Middle axis of the (n_targets, 3, n_iters) target array."""
    MIN   = 0
    VALUE = 1
    MAX   = 2


class FailureKind(IntEnum):
    """Why a single iteration's projection stopped."""
    NO_ROOT_IN_RANGE      = 0
    CONVERGENCE           = 1
    NON_ACTIONABLE_TIMING = 2


class IterationStatus(IntEnum):
    OK        = 0
    FAILED    = 1
    CANCELLED = 2


# ═══════════════════════════════════════════════════════════════════════
# RESULT TRANSFER OBJECTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class TargetFailure:
    """Structured report for a target that could not be resolved."""
    year: int
    iteration: int
    target_index: int
    kind: FailureKind
    message: str = ""


@dataclass
class IterationOutcome:
    """Outcome of projecting one iteration end to end."""
    iteration: int
    status: IterationStatus = IterationStatus.OK
    failure: Optional[TargetFailure] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == IterationStatus.OK
