"""
Fixed-size managed disk tiers (P/E/S SKUs).

A fixed-tier disk is billed as the smallest tier whose size covers the
requested size.
"""
from typing import Optional, Tuple

# (size GiB, tier number) shared by the P (Premium SSD) and E (Standard SSD) series
_SIZES: Tuple[Tuple[int, int], ...] = (
    (4, 1),
    (8, 2),
    (16, 3),
    (32, 4),
    (64, 6),
    (128, 10),
    (256, 15),
    (512, 20),
    (1024, 30),
    (2048, 40),
    (4096, 50),
    (8192, 60),
    (16384, 70),
    (32767, 80),
)

_SERIES = {
    "PremiumSSD": ("P", 4),
    "StandardSSD": ("E", 4),
    "StandardHDD": ("S", 32),  # S series starts at S4 (32 GiB)
}

MAX_DISK_SIZE_GIB = _SIZES[-1][0]


def is_fixed_tier(tier_level: str) -> bool:
    return tier_level in _SERIES


def disk_tier_for(tier_level: str, size_gib: float) -> Optional[Tuple[str, int]]:
    """
    Pick the billed SKU for a fixed-tier disk.

    Args:
        tier_level: Permutation tier level (PremiumSSD, StandardSSD, StandardHDD)
        size_gib: Requested disk size

    Returns:
        (sku, billed size GiB), e.g. ("P30", 1024); None for non-fixed tiers.
        Sizes above the largest tier map to the largest tier.
    """
    series = _SERIES.get(tier_level)
    if series is None:
        return None
    prefix, smallest = series
    for size, number in _SIZES:
        if size < smallest:
            continue
        if size_gib <= size:
            return f"{prefix}{number}", size
    size, number = _SIZES[-1]
    return f"{prefix}{number}", size
