"""
Tests for permutation identification.
"""

import pytest
from cost_engine.domain.permutations import (
    PermutationCatalog,
    ProductFamily,
    UnsupportedCombinationError,
    normalize_redundancy,
)


ANF = ProductFamily.AZURE_NETAPP_FILES
FILES = ProductFamily.AZURE_FILES
DISK = ProductFamily.MANAGED_DISK


@pytest.mark.parametrize("tier,cool,double,expected_id", [
    ("Standard", False, False, 1),
    ("Standard", False, True, 2),
    ("Standard", True, False, 3),
    ("Premium", False, False, 4),
    ("Premium", False, True, 5),
    ("Premium", True, False, 6),
    ("Ultra", False, False, 7),
    ("Ultra", False, True, 8),
    ("Ultra", True, False, 9),
    ("Flexible", False, False, 10),
    ("Flexible", True, False, 11),
])
def test_anf_supported_tuples_map_to_stable_ids(catalog, tier, cool, double, expected_id):
    """Each supported ANF tuple maps to its fixed id."""
    permutation = catalog.identify(ANF, tier, cool_access=cool, double_encryption=double)

    assert permutation.id == expected_id
    assert permutation.cool_access == cool
    assert permutation.double_encryption == double


def test_identify_is_stable_across_calls(catalog):
    first = catalog.identify(ANF, "Premium", cool_access=True)
    second = catalog.identify("AzureNetAppFiles", "premium", cool_access=True)

    assert first is second


def test_all_ids_are_unique():
    catalog = PermutationCatalog()
    ids = [permutation.id for permutation in catalog.all()]

    assert ids == sorted(set(ids))
    assert len(ids) == 38


def test_flexible_with_double_encryption_is_rejected(catalog):
    """Throughput-metered tier has no double encryption meter."""
    with pytest.raises(UnsupportedCombinationError) as exc_info:
        catalog.identify(ANF, "Flexible", double_encryption=True)

    assert exc_info.value.axis == "double_encryption"


def test_cool_access_with_double_encryption_is_rejected(catalog):
    with pytest.raises(UnsupportedCombinationError) as exc_info:
        catalog.identify(ANF, "Standard", cool_access=True, double_encryption=True)

    assert exc_info.value.axis == "double_encryption"


def test_unknown_tier_is_rejected(catalog):
    with pytest.raises(UnsupportedCombinationError) as exc_info:
        catalog.identify(ANF, "Extreme")

    assert exc_info.value.axis == "tier_level"


def test_unknown_product_family_is_rejected(catalog):
    with pytest.raises(UnsupportedCombinationError) as exc_info:
        catalog.identify("BlobStorage", "Hot")

    assert exc_info.value.axis == "product_family"


def test_cool_access_not_supported_on_files(catalog):
    with pytest.raises(UnsupportedCombinationError) as exc_info:
        catalog.identify(FILES, "Hot", cool_access=True, redundancy="LRS")

    assert exc_info.value.axis == "cool_access"


def test_files_requires_redundancy(catalog):
    with pytest.raises(UnsupportedCombinationError) as exc_info:
        catalog.identify(FILES, "Hot")

    assert exc_info.value.axis == "redundancy"


def test_files_premium_has_no_geo_redundancy(catalog):
    with pytest.raises(UnsupportedCombinationError) as exc_info:
        catalog.identify(FILES, "Premium", redundancy="GRS")

    assert exc_info.value.axis == "redundancy"


def test_files_account_sku_is_accepted_as_redundancy(catalog):
    permutation = catalog.identify(FILES, "TransactionOptimized", redundancy="Standard_RAGRS")

    assert permutation.redundancy == "GRS"
    assert permutation.tier_level == "TransactionOptimized"


def test_disk_sku_carries_redundancy(catalog):
    """Disk SKUs like Premium_ZRS embed the redundancy in the tier."""
    permutation = catalog.identify(DISK, "Premium_ZRS")

    assert permutation.id == 36
    assert permutation.name == "Managed Disk Premium SSD ZRS"


def test_ultra_disk_has_lrs_only(catalog):
    assert catalog.identify(DISK, "UltraSSD_LRS").id == 38

    with pytest.raises(UnsupportedCombinationError):
        catalog.identify(DISK, "UltraSSD_ZRS")


def test_included_throughput_scales_per_tib(catalog):
    premium = catalog.identify(ANF, "Premium")
    flexible = catalog.identify(ANF, "Flexible")

    assert premium.included_throughput_mibps(2048) == pytest.approx(128.0)
    assert flexible.included_throughput_mibps(50) == pytest.approx(128.0)


def test_cool_access_lowers_included_throughput(catalog):
    regular = catalog.identify(ANF, "Ultra")
    cool = catalog.identify(ANF, "Ultra", cool_access=True)

    assert cool.included_throughput_mibps(1024) < regular.included_throughput_mibps(1024)


def test_for_family_partitions_catalog(catalog):
    families = [catalog.for_family(family) for family in ProductFamily]

    assert [len(group) for group in families] == [11, 20, 7]


@pytest.mark.parametrize("value,expected", [
    ("Standard_LRS", "LRS"),
    ("Premium_ZRS", "ZRS"),
    ("Standard_RAGZRS", "GZRS"),
    ("grs", "GRS"),
    (None, None),
])
def test_normalize_redundancy(value, expected):
    assert normalize_redundancy(value) == expected
